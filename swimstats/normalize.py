from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from . import db as results_db
from .event_mapping import classify_stroke, parse_distance, stroke_from_code
from .models import Course, Event, RawResult, ResultCandidate, Stroke
from .util import parse_date, parse_time, parse_title_date

logger = logging.getLogger(__name__)

DEFAULT_COURSE = Course.SHORT_COURSE


class EventResolver:
    """Lookup-before-insert for events, remembered for the lifetime of one import."""

    def __init__(self, con: sqlite3.Connection) -> None:
        self.con = con
        self._cache: dict[tuple[Stroke, int, Course], Event] = {}
        self.created = 0

    def resolve(self, *, stroke: Stroke, distance_m: int, course: Course) -> Event:
        key = (stroke, int(distance_m), course)
        event = self._cache.get(key)
        if event is not None:
            return event
        event = results_db.find_event(con=self.con, stroke=stroke, distance_m=distance_m, course=course)
        if event is None:
            event = results_db.create_event(con=self.con, stroke=stroke, distance_m=distance_m, course=course)
            self.created += 1
            logger.info("Created event %s", event.display_name)
        self._cache[key] = event
        return event


@dataclass
class NormalizedBatch:
    candidates: list[ResultCandidate] = field(default_factory=list)
    skipped: int = 0
    estimated_dates: int = 0


def resolve_date(raw: RawResult) -> Optional[date]:
    text = raw.date_text or ""
    return parse_date(text) or parse_title_date(text)


def normalize_record(
    raw: RawResult,
    *,
    swimmer_id: int,
    events: EventResolver,
    today: date,
) -> Optional[ResultCandidate]:
    """Typed candidate for one raw row, or None when stroke, distance or time is missing."""
    if raw.stroke_code:
        stroke = stroke_from_code(raw.stroke_code)
    else:
        stroke = classify_stroke(raw.event_text)
    if stroke is None:
        logger.debug("Skipping %r: unclassified stroke", raw.event_text)
        return None

    distance_m = raw.distance_m or parse_distance(raw.event_text)
    if not distance_m:
        logger.debug("Skipping %r: no distance", raw.event_text)
        return None

    time_seconds = parse_time(raw.time_text)
    if time_seconds is None:
        logger.debug("Skipping %r: unparseable time %r", raw.event_text, raw.time_text)
        return None

    result_date = resolve_date(raw)
    estimated = result_date is None
    if estimated:
        result_date = today

    course = raw.course or DEFAULT_COURSE
    event = events.resolve(stroke=stroke, distance_m=distance_m, course=course)
    return ResultCandidate(
        swimmer_id=swimmer_id,
        event_id=event.id,
        time_seconds=time_seconds,
        result_date=result_date,
        course=course,
        location=raw.location or None,
        date_estimated=estimated,
        source_url=raw.source_url,
    )


def normalize_records(
    records: Iterable[RawResult],
    *,
    swimmer_id: int,
    events: EventResolver,
    today: Optional[date] = None,
) -> NormalizedBatch:
    today = today or date.today()
    batch = NormalizedBatch()
    for raw in records:
        candidate = normalize_record(raw, swimmer_id=swimmer_id, events=events, today=today)
        if candidate is None:
            batch.skipped += 1
            continue
        if candidate.date_estimated:
            batch.estimated_dates += 1
        batch.candidates.append(candidate)
    return batch
