from datetime import date

from swimstats import db as results_db
from swimstats.dedup import merge_results
from swimstats.models import Course, ResultCandidate, Stroke


def _candidate(swimmer_id, event_id, seconds, day=date(2023, 3, 12)):
    return ResultCandidate(
        swimmer_id=swimmer_id,
        event_id=event_id,
        time_seconds=seconds,
        result_date=day,
        course=Course.LONG_COURSE,
        location=None,
        date_estimated=False,
        source_url=None,
    )


def _setup(con):
    swimmer = results_db.create_swimmer(con=con, first_name="Anna", last_name="de Vries")
    event = results_db.get_or_create_event(con=con, stroke=Stroke.FREESTYLE, distance_m=50, course=Course.LONG_COURSE)
    return swimmer, event


def test_exact_time_is_duplicate_close_times_are_new(con):
    swimmer, event = _setup(con)
    merge_results(con=con, swimmer_id=swimmer.id, candidates=[_candidate(swimmer.id, event.id, 24.80)])

    counts = merge_results(
        con=con,
        swimmer_id=swimmer.id,
        candidates=[
            _candidate(swimmer.id, event.id, 24.80),
            _candidate(swimmer.id, event.id, 24.79),
            _candidate(swimmer.id, event.id, 24.81),
            _candidate(swimmer.id, event.id, 23.50),
        ],
    )

    assert (counts.retrieved, counts.new, counts.existing) == (4, 3, 1)
    stored = sorted(r.time_seconds for r in results_db.list_results(con=con, swimmer_id=swimmer.id))
    assert stored == [23.50, 24.79, 24.80, 24.81]


def test_same_day_different_time_is_kept(con):
    swimmer, event = _setup(con)
    counts = merge_results(
        con=con,
        swimmer_id=swimmer.id,
        candidates=[_candidate(swimmer.id, event.id, 25.10), _candidate(swimmer.id, event.id, 24.95)],
    )
    assert counts.new == 2


def test_rerun_is_idempotent(con):
    swimmer, event = _setup(con)
    batch = [_candidate(swimmer.id, event.id, 24.80), _candidate(swimmer.id, event.id, 24.80)]

    first = merge_results(con=con, swimmer_id=swimmer.id, candidates=batch)
    second = merge_results(con=con, swimmer_id=swimmer.id, candidates=batch)

    assert (first.new, first.existing) == (1, 1)
    assert (second.new, second.existing) == (0, 2)
    assert len(results_db.list_results(con=con, swimmer_id=swimmer.id)) == 1


def test_other_swimmers_results_do_not_count(con):
    swimmer, event = _setup(con)
    other = results_db.create_swimmer(con=con, first_name="Tom", last_name="Bakker")
    merge_results(con=con, swimmer_id=other.id, candidates=[_candidate(other.id, event.id, 24.80)])

    counts = merge_results(con=con, swimmer_id=swimmer.id, candidates=[_candidate(swimmer.id, event.id, 24.80)])
    assert counts.new == 1


def test_empty_batch(con):
    swimmer, _ = _setup(con)
    counts = merge_results(con=con, swimmer_id=swimmer.id, candidates=[])
    assert (counts.retrieved, counts.new, counts.existing) == (0, 0, 0)
