from __future__ import annotations

import re
from typing import Optional

from .models import Course, Stroke


_DISTANCE_RE = re.compile(r"(?P<m>\d+)\s*m(?:eter|etres|eters)?\b", re.IGNORECASE)
_SLAG_RE = re.compile(r"slag=(?P<code>[a-z]+)(?P<m>\d+)", re.IGNORECASE)
_IM_WORD_RE = re.compile(r"(?<![a-z])im(?![a-z])")

# Fixed precedence: the first stroke whose keyword occurs in the label wins.
_STROKE_KEYWORDS: tuple[tuple[Stroke, tuple[str, ...]], ...] = (
    (Stroke.FREESTYLE, ("free", "crawl")),
    (Stroke.BACKSTROKE, ("back", "dorsal")),
    (Stroke.BREASTSTROKE, ("breast",)),
    (Stroke.BUTTERFLY, ("fly", "butterfly", "papillon")),
    (Stroke.INDIVIDUAL_MEDLEY, ("medley", "individual")),
)

_DUTCH_STROKE_KEYWORDS: tuple[tuple[Stroke, tuple[str, ...]], ...] = (
    (Stroke.FREESTYLE, ("vrij",)),
    (Stroke.BACKSTROKE, ("rug",)),
    (Stroke.BREASTSTROKE, ("school",)),
    (Stroke.BUTTERFLY, ("vlinder",)),
    (Stroke.INDIVIDUAL_MEDLEY, ("wissel",)),
)

# SwimTrack "slag=" codes
STROKE_CODES = {
    "vl": Stroke.BUTTERFLY,
    "ru": Stroke.BACKSTROKE,
    "ss": Stroke.BREASTSTROKE,
    "vr": Stroke.FREESTYLE,
    "wi": Stroke.INDIVIDUAL_MEDLEY,
}


def classify_stroke(label: str) -> Optional[Stroke]:
    low = (label or "").strip().lower()
    if not low:
        return None

    for stroke, keywords in _STROKE_KEYWORDS:
        if any(k in low for k in keywords):
            return stroke
        if stroke is Stroke.INDIVIDUAL_MEDLEY and _IM_WORD_RE.search(low):
            return stroke

    for stroke, keywords in _DUTCH_STROKE_KEYWORDS:
        if any(k in low for k in keywords):
            return stroke

    return None


def stroke_from_code(code: str) -> Optional[Stroke]:
    return STROKE_CODES.get((code or "").strip().lower())


def parse_distance(label: str) -> Optional[int]:
    m = _DISTANCE_RE.search(label or "")
    if not m:
        return None
    meters = int(m.group("m"))
    return meters if meters > 0 else None


def parse_slag(href: str) -> Optional[tuple[str, int]]:
    """``"...&slag=vl50"`` -> ``("vl", 50)``."""
    m = _SLAG_RE.search(href or "")
    if not m:
        return None
    meters = int(m.group("m"))
    if meters <= 0:
        return None
    return (m.group("code").lower(), meters)


def infer_course(header_text: str, *, default: Course = Course.LONG_COURSE) -> Course:
    text = header_text or ""
    if "25m" in text or "Short Course" in text:
        return Course.SHORT_COURSE
    if "50m" in text or "Long Course" in text:
        return Course.LONG_COURSE
    return default
