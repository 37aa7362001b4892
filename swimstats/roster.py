from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from . import db as results_db
from .util import norm_cell, split_full_name

logger = logging.getLogger(__name__)


class RosterError(ValueError):
    pass


@dataclass(frozen=True)
class RosterEntry:
    first_name: str
    last_name: str
    roster_id: Optional[int] = None


@dataclass(frozen=True)
class Roster:
    club_name: str
    swimmers: tuple[RosterEntry, ...]


@dataclass(frozen=True)
class SeedSummary:
    listed: int
    created: int


def parse_roster(data: Any) -> Roster:
    """Roster from decoded JSON.

    Current format: ``{"clubName": "EZPC", "swimmers": [{"id": 1, "firstName": "..", "lastName": ".."}]}``.
    The older bare list of swimmers, with a single ``name`` field allowed in place
    of first/last name, is still read.
    """
    if isinstance(data, list):
        club_name = ""
        items = data
    elif isinstance(data, dict):
        club_name = norm_cell(str(data.get("clubName") or ""))
        if not club_name:
            raise RosterError("Roster must contain a non-empty 'clubName'")
        items = data.get("swimmers")
        if not isinstance(items, list):
            raise RosterError("Roster must contain a 'swimmers' array")
    else:
        raise RosterError(f"Roster must be a JSON object, got {type(data).__name__}")

    entries: list[RosterEntry] = []
    for pos, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise RosterError(f"Swimmer #{pos} is not an object")
        first = norm_cell(str(item.get("firstName") or ""))
        last = norm_cell(str(item.get("lastName") or ""))
        if not (first and last) and item.get("name"):
            parts = split_full_name(str(item["name"]))
            if parts:
                first, last = parts
        if not first or not last:
            raise RosterError(f"Swimmer #{pos} needs both 'firstName' and 'lastName'")
        roster_id = item.get("id")
        if roster_id is not None:
            try:
                roster_id = int(roster_id)
            except (TypeError, ValueError):
                raise RosterError(f"Swimmer #{pos} has a non-integer id") from None
        entries.append(RosterEntry(first_name=first, last_name=last, roster_id=roster_id))

    return Roster(club_name=club_name, swimmers=tuple(entries))


def load_roster(path: Path) -> Roster:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise RosterError(f"Roster file not found: {path}") from None
    if not text.strip():
        raise RosterError(f"Roster file is empty: {path}")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RosterError(f"Invalid JSON in {path}: {exc}") from exc
    roster = parse_roster(data)
    logger.info("Loaded %d swimmers for %r from %s", len(roster.swimmers), roster.club_name, path)
    return roster


def seed_roster(*, con: sqlite3.Connection, roster: Roster) -> SeedSummary:
    """Create the roster's swimmers that are not in the store yet, in roster order."""
    created = 0
    for entry in roster.swimmers:
        if results_db.find_swimmer(con=con, first_name=entry.first_name, last_name=entry.last_name) is None:
            results_db.create_swimmer(con=con, first_name=entry.first_name, last_name=entry.last_name)
            created += 1
    return SeedSummary(listed=len(roster.swimmers), created=created)
