import dataclasses
import threading
from datetime import date
from unittest.mock import Mock

import pytest
import requests

from swimstats import db as results_db
from swimstats.config import SWIMRANKINGS, SWIMTRACK
from swimstats.fetch import FetchError, ResilientFetcher
from swimstats.ingest import ImportOrchestrator, ImportState, InvalidSwimmerName
from swimstats.models import Course, RawResult, ResultCandidate, Stroke, SwimmerLookup
from swimstats.sites import make_strategy
from swimstats.swimrankings import SwimRankingsSource
from swimstats.swimtrack import SwimTrackSource

ROSTER = [("Anna", "Visser"), ("Tom", "Bakker"), ("Sanne", "Jansen"), ("Lotte", "Smit"), ("Daan", "Mulder")]


def _raw(time_text, event_text="50m vrije slag"):
    return RawResult(
        swimmer_name="x",
        event_text=event_text,
        time_text=time_text,
        date_text="Gezwommen op 29-01-2023",
        course=None,
        location=None,
        source_url="https://example.test/page",
    )


class FakeStrategy:
    site = SWIMTRACK

    def __init__(self, outcomes, listing=()):
        # last name -> list of RawResult, or an exception to raise
        self.outcomes = outcomes
        self.listing = list(listing)
        self.calls = []

    def list_swimmers(self, fetcher):
        return list(self.listing)

    def fetch_results(self, fetcher, *, first_name, last_name):
        self.calls.append(last_name)
        outcome = self.outcomes.get(last_name)
        if outcome is None:
            return SwimmerLookup.not_found(f"Swimmer not found: {first_name} {last_name}")
        if isinstance(outcome, Exception):
            raise outcome
        url = f"https://example.test/{last_name}"
        fetcher.get(url)
        return SwimmerLookup(found=True, source_name=f"{first_name} {last_name}", url=url, records=tuple(outcome))


def _seed(con, n):
    return [results_db.create_swimmer(con=con, first_name=f, last_name=l) for f, l in ROSTER[:n]]


def _orchestrator(db_path, strategy, *, fetcher=None, probe=True, on_network_trouble=None):
    return ImportOrchestrator(
        SWIMTRACK,
        db_path=db_path,
        fetcher_factory=lambda site: fetcher if fetcher is not None else Mock(),
        strategy_factory=lambda site: strategy,
        probe=lambda site: probe,
        sleep=lambda s: None,
        on_network_trouble=on_network_trouble,
    )


def _net_error(name):
    return FetchError(f"https://example.test/{name}", "ConnectTimeout", attempts=3)


def _ok(text="<html></html>"):
    resp = Mock()
    resp.status_code = 200
    resp.text = text
    resp.headers = {"Content-Type": "text/html; charset=utf-8"}
    return resp


def test_roster_import_with_flaky_page_totals_and_progress(con, db_path):
    anna, tom, sanne = _seed(con, 3)
    event = results_db.get_or_create_event(con=con, stroke=Stroke.FREESTYLE, distance_m=50, course=Course.SHORT_COURSE)
    results_db.append_results(
        con=con,
        results=[
            ResultCandidate(
                swimmer_id=sanne.id,
                event_id=event.id,
                time_seconds=28.00,
                result_date=date(2023, 1, 29),
                course=Course.SHORT_COURSE,
                location=None,
                date_estimated=False,
                source_url=None,
            )
        ],
    )

    attempts = {"Bakker": 0}

    def _get(url, timeout):
        if url.endswith("/Bakker"):
            attempts["Bakker"] += 1
            if attempts["Bakker"] <= 2:
                raise requests.ConnectionError("connection reset")
        return _ok()

    session = Mock()
    session.get.side_effect = _get
    fetcher = ResilientFetcher(timeout_s=1, session=session, sleep=lambda s: None)
    strategy = FakeStrategy(
        {
            "Visser": [_raw("26,45"), _raw("27,00")],
            "Bakker": [_raw("30,10")],
            "Jansen": [_raw("28,00"), _raw("28,50")],
        }
    )
    progress = []

    report = _orchestrator(db_path, strategy, fetcher=fetcher).import_roster(
        progress=lambda i, total, status: progress.append((i, total))
    )

    assert attempts["Bakker"] == 3
    assert report.state is ImportState.COMPLETED
    assert (report.retrieved, report.new, report.existing) == (5, 4, 1)
    assert (report.succeeded, report.failed) == (3, 0)
    assert progress == [(1, 3), (2, 3), (3, 3)]
    assert len(results_db.list_results(con=con, swimmer_id=tom.id)) == 1
    assert len(results_db.list_events(con)) == 1


def test_cancel_between_first_and_second_swimmer(con, db_path):
    swimmers = _seed(con, 5)
    strategy = FakeStrategy({last: [_raw("30,00")] for _, last in ROSTER})
    cancel = threading.Event()

    def _progress(index, total, status):
        if index == 1:
            cancel.set()

    report = _orchestrator(db_path, strategy).import_roster(progress=_progress, cancel=cancel)

    assert report.state is ImportState.CANCELLED
    assert report.checkpoint == 1
    assert strategy.calls == ["Visser"]
    assert len(results_db.list_results(con=con, swimmer_id=swimmers[0].id)) == 1
    for swimmer in swimmers[1:]:
        assert results_db.list_results(con=con, swimmer_id=swimmer.id) == []


def test_three_network_failures_pause_with_resumable_checkpoint(con, db_path):
    swimmers = _seed(con, 5)
    outcomes = {
        "Visser": [_raw("30,00")],
        "Bakker": _net_error("Bakker"),
        "Jansen": _net_error("Jansen"),
        "Smit": _net_error("Smit"),
        "Mulder": [_raw("31,00")],
    }
    strategy = FakeStrategy(outcomes)
    orchestrator = _orchestrator(db_path, strategy)

    paused = orchestrator.import_roster()

    assert paused.state is ImportState.PAUSED
    assert paused.checkpoint == 1
    assert (paused.succeeded, paused.failed) == (1, 0)
    assert strategy.calls == ["Visser", "Bakker", "Jansen", "Smit"]

    for name in ("Bakker", "Jansen", "Smit"):
        outcomes[name] = [_raw("29,00")]
    resumed = orchestrator.import_roster(resume_from=paused.checkpoint)

    assert resumed.state is ImportState.COMPLETED
    assert resumed.succeeded == 4
    assert strategy.calls[4:] == ["Bakker", "Jansen", "Smit", "Mulder"]
    assert all(len(results_db.list_results(con=con, swimmer_id=s.id)) == 1 for s in swimmers)


def test_network_trouble_callback_can_retry(con, db_path):
    _seed(con, 4)
    outcomes = {
        "Visser": [_raw("30,00")],
        "Bakker": _net_error("Bakker"),
        "Jansen": _net_error("Jansen"),
        "Smit": _net_error("Smit"),
    }
    strategy = FakeStrategy(outcomes)
    decisions = []

    def _decide(checkpoint):
        decisions.append(checkpoint)
        for name in ("Bakker", "Jansen", "Smit"):
            outcomes[name] = [_raw("29,00")]
        return True

    report = _orchestrator(db_path, strategy, on_network_trouble=_decide).import_roster()

    assert decisions == [1]
    assert report.state is ImportState.COMPLETED
    assert (report.succeeded, report.failed, report.new) == (4, 0, 4)


def test_network_trouble_callback_can_cancel(con, db_path):
    _seed(con, 4)
    strategy = FakeStrategy({"Bakker": _net_error("Bakker"), "Jansen": _net_error("Jansen"), "Smit": _net_error("Smit")})

    report = _orchestrator(db_path, strategy, on_network_trouble=lambda checkpoint: False).import_roster()

    assert report.state is ImportState.CANCELLED
    assert report.checkpoint == 1
    assert report.not_found == 1


def test_other_failures_are_counted_and_skipped(con, db_path):
    _seed(con, 3)
    strategy = FakeStrategy({"Visser": ValueError("unexpected markup"), "Jansen": [_raw("28,00"), _raw("bad")]})

    report = _orchestrator(db_path, strategy).import_roster()

    assert report.state is ImportState.COMPLETED_WITH_FAILURES
    assert (report.succeeded, report.failed, report.not_found) == (1, 2, 1)
    assert report.skipped_records == 1
    assert strategy.calls == ["Visser", "Bakker", "Jansen"]
    assert len(report.failures) == 2


def test_unreachable_site_writes_nothing(db_path):
    strategy = FakeStrategy({})

    report = _orchestrator(db_path, strategy, probe=False).import_roster()

    assert report.state is ImportState.UNREACHABLE
    assert strategy.calls == []
    assert not db_path.exists()


def test_import_swimmer_by_name(con, db_path):
    strategy = FakeStrategy({"de Vries": [_raw("26,45"), _raw("26,45")]})
    orchestrator = _orchestrator(db_path, strategy)

    report = orchestrator.import_swimmer_by_name("Anna de Vries")

    assert report.state is ImportState.COMPLETED
    assert (report.retrieved, report.new, report.existing) == (2, 1, 1)
    swimmer = results_db.find_swimmer(con=con, first_name="Anna", last_name="de Vries")
    assert swimmer is not None
    assert orchestrator.state is ImportState.COMPLETED


def test_import_swimmer_not_found_creates_nothing(con, db_path):
    report = _orchestrator(db_path, FakeStrategy({})).import_swimmer("Piet", "Smit")

    assert report.state is ImportState.COMPLETED_WITH_FAILURES
    assert report.not_found == 1
    assert results_db.list_swimmers(con) == []


def test_import_swimmer_network_failure_is_reported(db_path):
    report = _orchestrator(db_path, FakeStrategy({"Smit": _net_error("Smit")})).import_swimmer("Piet", "Smit")

    assert report.state is ImportState.COMPLETED_WITH_FAILURES
    assert report.failed == 1


@pytest.mark.parametrize("name", ["Anna", "", "   "])
def test_malformed_names_are_rejected(db_path, name):
    orchestrator = _orchestrator(db_path, FakeStrategy({}))
    with pytest.raises(InvalidSwimmerName):
        orchestrator.import_swimmer_by_name(name)
    with pytest.raises(ValueError):
        orchestrator.import_swimmer(name, "")


def test_discover_swimmers(con, db_path):
    strategy = FakeStrategy({}, listing=["Anna de Vries", "Tom Bakker", "Cher"])
    orchestrator = _orchestrator(db_path, strategy)

    first = orchestrator.discover_swimmers()
    second = orchestrator.discover_swimmers()

    assert (first.listed, first.created, first.skipped_names) == (3, 2, 1)
    assert second.created == 0
    assert [s.display_name for s in results_db.list_swimmers(con)] == ["Anna de Vries", "Tom Bakker"]


def test_start_background_returns_future(con, db_path):
    _seed(con, 2)
    strategy = FakeStrategy({"Visser": [_raw("30,00")], "Bakker": [_raw("31,00")]})
    fetcher = Mock()

    future = _orchestrator(db_path, strategy, fetcher=fetcher).start_background()
    report = future.result(timeout=10)

    assert report.state is ImportState.COMPLETED
    assert report.new == 2
    fetcher.close.assert_called_once()


def test_probe_reachable_sets_state(db_path):
    orchestrator = _orchestrator(db_path, FakeStrategy({}), probe=False)
    assert orchestrator.probe_reachable() is False
    assert orchestrator.state is ImportState.UNREACHABLE


def test_make_strategy_picks_the_site_extractor():
    assert isinstance(make_strategy(SWIMRANKINGS, sleep=lambda s: None), SwimRankingsSource)
    assert isinstance(make_strategy(SWIMTRACK, sleep=lambda s: None), SwimTrackSource)
    with pytest.raises(ValueError):
        make_strategy(dataclasses.replace(SWIMTRACK, name="other"), sleep=lambda s: None)


def _missing_page(name):
    return FetchError(f"https://example.test/{name}", "HTTP 404", attempts=1, status_code=404, transient=False)


def test_missing_pages_do_not_pause_the_run(con, db_path):
    _seed(con, 4)
    strategy = FakeStrategy(
        {
            "Visser": _missing_page("Visser"),
            "Bakker": _missing_page("Bakker"),
            "Jansen": _missing_page("Jansen"),
            "Smit": [_raw("30,00")],
        }
    )
    decisions = []

    def _decide(checkpoint):
        decisions.append(checkpoint)
        return True

    report = _orchestrator(db_path, strategy, on_network_trouble=_decide).import_roster()

    assert report.state is ImportState.COMPLETED_WITH_FAILURES
    assert report.checkpoint is None
    assert (report.succeeded, report.failed) == (1, 3)
    assert strategy.calls == ["Visser", "Bakker", "Jansen", "Smit"]
    assert decisions == []


def test_missing_page_breaks_a_network_failure_streak(con, db_path):
    _seed(con, 5)
    strategy = FakeStrategy(
        {
            "Visser": _net_error("Visser"),
            "Bakker": _net_error("Bakker"),
            "Jansen": _missing_page("Jansen"),
            "Smit": _net_error("Smit"),
            "Mulder": [_raw("30,00")],
        }
    )

    report = _orchestrator(db_path, strategy).import_roster()

    assert report.state is ImportState.COMPLETED_WITH_FAILURES
    assert (report.succeeded, report.failed) == (1, 4)
