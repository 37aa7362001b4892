from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Sequence

from . import db as results_db
from .models import ResultCandidate, to_centiseconds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeCounts:
    retrieved: int
    new: int
    existing: int


def merge_results(*, con: sqlite3.Connection, swimmer_id: int, candidates: Sequence[ResultCandidate]) -> MergeCounts:
    """Append the candidates that are not stored yet for this swimmer.

    A candidate duplicates a stored result when event and time match exactly in
    centiseconds. Same day with a different time (heat vs. final) is a new result.
    """
    if not candidates:
        return MergeCounts(retrieved=0, new=0, existing=0)

    known = {
        (r.event_id, to_centiseconds(r.time_seconds))
        for r in results_db.list_results(con=con, swimmer_id=swimmer_id)
    }

    to_insert: list[ResultCandidate] = []
    existing = 0
    for cand in candidates:
        if cand.swimmer_id != swimmer_id:
            raise ValueError(f"Candidate for swimmer {cand.swimmer_id} in batch for swimmer {swimmer_id}")
        key = (cand.event_id, cand.centiseconds)
        if key in known:
            existing += 1
            continue
        known.add(key)
        to_insert.append(cand)

    results_db.append_results(con=con, results=to_insert)
    logger.debug("Swimmer %d: %d retrieved, %d new, %d existing", swimmer_id, len(candidates), len(to_insert), existing)
    return MergeCounts(retrieved=len(candidates), new=len(to_insert), existing=existing)
