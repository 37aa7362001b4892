from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Iterable, Optional

from .models import Course, Event, Result, ResultCandidate, Stroke, Swimmer, to_centiseconds

SCHEMA_VERSION = 1

SCHEMA = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    description TEXT
);

CREATE TABLE IF NOT EXISTS swimmers (
    id INTEGER PRIMARY KEY,
    first_name TEXT NOT NULL CHECK(TRIM(first_name) != ''),
    last_name TEXT NOT NULL CHECK(TRIM(last_name) != ''),
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(first_name, last_name)
);

CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY,
    stroke TEXT NOT NULL CHECK(stroke IN ('Freestyle','Backstroke','Breaststroke','Butterfly','IndividualMedley')),
    distance_m INTEGER NOT NULL CHECK(distance_m > 0),
    course INTEGER NOT NULL CHECK(course IN (25, 50)),
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(stroke, distance_m, course)
);

CREATE TABLE IF NOT EXISTS results (
    id INTEGER PRIMARY KEY,
    swimmer_id INTEGER NOT NULL REFERENCES swimmers(id),
    event_id INTEGER NOT NULL REFERENCES events(id),
    time_seconds REAL NOT NULL CHECK(time_seconds > 0),
    time_cs INTEGER NOT NULL,
    result_date TEXT NOT NULL,
    course INTEGER NOT NULL CHECK(course IN (25, 50)),
    location TEXT,
    date_estimated INTEGER NOT NULL DEFAULT 0 CHECK(date_estimated IN (0, 1)),
    source_url TEXT,
    scraped_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_results_swimmer ON results(swimmer_id, event_id);
CREATE INDEX IF NOT EXISTS idx_results_course ON results(course);
"""


@dataclass(frozen=True)
class DbStats:
    swimmers: int
    events: int
    results: int
    estimated_dates: int


def connect(db_path: Path) -> sqlite3.Connection:
    if str(db_path) != ":memory:":
        db_path.parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(db_path)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys = ON;")
    return con


def init_db(con: sqlite3.Connection) -> None:
    con.executescript(SCHEMA)
    row = con.execute("SELECT MAX(version) AS v FROM schema_version").fetchone()
    if row["v"] is None or row["v"] < SCHEMA_VERSION:
        con.execute(
            "INSERT INTO schema_version (version, description) VALUES (?, ?)",
            (SCHEMA_VERSION, "Swimmers, events, results"),
        )
    con.commit()


def _norm_name(name: str) -> str:
    return " ".join((name or "").split())


def _swimmer_from_row(row: sqlite3.Row) -> Swimmer:
    return Swimmer(id=int(row["id"]), first_name=row["first_name"], last_name=row["last_name"])


def _event_from_row(row: sqlite3.Row) -> Event:
    return Event(
        id=int(row["id"]),
        stroke=Stroke(row["stroke"]),
        distance_m=int(row["distance_m"]),
        course=Course(int(row["course"])),
    )


def _result_from_row(row: sqlite3.Row) -> Result:
    return Result(
        id=int(row["id"]),
        swimmer_id=int(row["swimmer_id"]),
        event_id=int(row["event_id"]),
        time_seconds=float(row["time_seconds"]),
        result_date=date.fromisoformat(row["result_date"]),
        course=Course(int(row["course"])),
        location=row["location"],
        date_estimated=bool(row["date_estimated"]),
        source_url=row["source_url"],
    )


def find_swimmer(*, con: sqlite3.Connection, first_name: str, last_name: str) -> Optional[Swimmer]:
    row = con.execute(
        """
        SELECT id, first_name, last_name FROM swimmers
        WHERE LOWER(first_name) = LOWER(?) AND LOWER(last_name) = LOWER(?)
        ORDER BY id
        LIMIT 1
        """,
        (_norm_name(first_name), _norm_name(last_name)),
    ).fetchone()
    return _swimmer_from_row(row) if row else None


def create_swimmer(*, con: sqlite3.Connection, first_name: str, last_name: str) -> Swimmer:
    first = _norm_name(first_name)
    last = _norm_name(last_name)
    if not first or not last:
        raise ValueError(f"Swimmer needs both a first and a last name, got {first_name!r} {last_name!r}")
    cur = con.execute("INSERT INTO swimmers (first_name, last_name) VALUES (?, ?)", (first, last))
    con.commit()
    return Swimmer(id=int(cur.lastrowid), first_name=first, last_name=last)


def get_or_create_swimmer(*, con: sqlite3.Connection, first_name: str, last_name: str) -> Swimmer:
    existing = find_swimmer(con=con, first_name=first_name, last_name=last_name)
    if existing:
        return existing
    return create_swimmer(con=con, first_name=first_name, last_name=last_name)


def list_swimmers(con: sqlite3.Connection) -> list[Swimmer]:
    rows = con.execute("SELECT id, first_name, last_name FROM swimmers ORDER BY id").fetchall()
    return [_swimmer_from_row(r) for r in rows]


def find_event(*, con: sqlite3.Connection, stroke: Stroke, distance_m: int, course: Course) -> Optional[Event]:
    row = con.execute(
        "SELECT id, stroke, distance_m, course FROM events WHERE stroke = ? AND distance_m = ? AND course = ?",
        (stroke.value, int(distance_m), int(course.value)),
    ).fetchone()
    return _event_from_row(row) if row else None


def create_event(*, con: sqlite3.Connection, stroke: Stroke, distance_m: int, course: Course) -> Event:
    # Another connection may have inserted the same event.
    con.execute(
        """
        INSERT INTO events (stroke, distance_m, course) VALUES (?, ?, ?)
        ON CONFLICT(stroke, distance_m, course) DO NOTHING
        """,
        (stroke.value, int(distance_m), int(course.value)),
    )
    con.commit()
    event = find_event(con=con, stroke=stroke, distance_m=distance_m, course=course)
    if event is None:
        raise RuntimeError("Failed to create event")
    return event


def get_or_create_event(*, con: sqlite3.Connection, stroke: Stroke, distance_m: int, course: Course) -> Event:
    existing = find_event(con=con, stroke=stroke, distance_m=distance_m, course=course)
    if existing:
        return existing
    return create_event(con=con, stroke=stroke, distance_m=distance_m, course=course)


def list_events(con: sqlite3.Connection) -> list[Event]:
    rows = con.execute("SELECT id, stroke, distance_m, course FROM events ORDER BY id").fetchall()
    return [_event_from_row(r) for r in rows]


def list_results(*, con: sqlite3.Connection, swimmer_id: int) -> list[Result]:
    rows = con.execute(
        """
        SELECT id, swimmer_id, event_id, time_seconds, result_date, course, location, date_estimated, source_url
        FROM results
        WHERE swimmer_id = ?
        ORDER BY result_date, id
        """,
        (int(swimmer_id),),
    ).fetchall()
    return [_result_from_row(r) for r in rows]


def append_results(*, con: sqlite3.Connection, results: Iterable[ResultCandidate]) -> int:
    """Insert results in one transaction. Returns the number of rows written."""
    rows = [
        (
            r.swimmer_id,
            r.event_id,
            float(r.time_seconds),
            to_centiseconds(r.time_seconds),
            r.result_date.isoformat(),
            int(r.course.value),
            r.location,
            1 if r.date_estimated else 0,
            r.source_url,
        )
        for r in results
    ]
    if not rows:
        return 0
    with con:
        con.executemany(
            """
            INSERT INTO results (
                swimmer_id, event_id, time_seconds, time_cs, result_date, course,
                location, date_estimated, source_url
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
    return len(rows)


def db_stats(con: sqlite3.Connection) -> DbStats:
    def _count(sql: str) -> int:
        return int(con.execute(sql).fetchone()[0])

    return DbStats(
        swimmers=_count("SELECT COUNT(*) FROM swimmers"),
        events=_count("SELECT COUNT(*) FROM events"),
        results=_count("SELECT COUNT(*) FROM results"),
        estimated_dates=_count("SELECT COUNT(*) FROM results WHERE date_estimated = 1"),
    )
