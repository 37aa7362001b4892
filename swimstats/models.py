from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional


class Stroke(str, Enum):
    FREESTYLE = "Freestyle"
    BACKSTROKE = "Backstroke"
    BREASTSTROKE = "Breaststroke"
    BUTTERFLY = "Butterfly"
    INDIVIDUAL_MEDLEY = "IndividualMedley"


class Course(int, Enum):
    LONG_COURSE = 50
    SHORT_COURSE = 25


@dataclass(frozen=True)
class Swimmer:
    id: int
    first_name: str
    last_name: str

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Event:
    id: int
    stroke: Stroke
    distance_m: int
    course: Course

    @property
    def display_name(self) -> str:
        return f"{self.distance_m}m {self.stroke.value} ({self.course.value}m)"


@dataclass(frozen=True)
class Result:
    id: int
    swimmer_id: int
    event_id: int
    time_seconds: float
    result_date: date
    course: Course
    location: Optional[str]
    date_estimated: bool = False
    source_url: Optional[str] = None


@dataclass(frozen=True)
class RawResult:
    """One row as it appears on a source page, before any parsing."""

    swimmer_name: str
    event_text: str
    time_text: str
    date_text: Optional[str]
    course: Optional[Course]  # None = no hint in the markup
    location: Optional[str]
    source_url: str
    stroke_code: Optional[str] = None  # site-specific short code, e.g. "vl"
    distance_m: Optional[int] = None


@dataclass(frozen=True)
class ResultCandidate:
    swimmer_id: int
    event_id: int
    time_seconds: float
    result_date: date
    course: Course
    location: Optional[str]
    date_estimated: bool
    source_url: Optional[str]

    @property
    def centiseconds(self) -> int:
        return to_centiseconds(self.time_seconds)


def to_centiseconds(seconds: float) -> int:
    return int(round(float(seconds) * 100))


@dataclass(frozen=True)
class SwimmerLookup:
    """What a site strategy found for one swimmer.

    ``found`` is False when the site has no matching swimmer; that is an answer,
    not an error.
    """

    found: bool
    source_name: Optional[str] = None
    url: Optional[str] = None
    records: tuple[RawResult, ...] = ()
    pages_failed: int = 0
    reason: Optional[str] = None

    @classmethod
    def not_found(cls, reason: str) -> "SwimmerLookup":
        return cls(found=False, reason=reason)
