from __future__ import annotations

import re
from datetime import date
from typing import Optional

from lxml import html


_TIME_RE = re.compile(r"^(?:(?P<min>\d{1,2}):(?P<sec2>\d{2})|(?P<sec>\d{1,2}))\.(?P<frac>\d{1,2})$")

_DATE_TEXT_MONTH_RE = re.compile(r"(?<!\d)(?P<d>\d{1,2})\s+(?P<mon>[A-Za-z]{3})\.?\s+(?P<y>\d{4})(?!\d)")
_DATE_ISO_RE = re.compile(r"(?<!\d)(?P<y>\d{4})-(?P<m>\d{1,2})-(?P<d>\d{1,2})(?!\d)")
_DATE_DMY4_RE = re.compile(r"(?<!\d)(?P<d>\d{1,2})[/-](?P<m>\d{1,2})[/-](?P<y>\d{4})(?!\d)")
_DATE_DMY2_RE = re.compile(r"(?<!\d)(?P<d>\d{1,2})[/-](?P<m>\d{1,2})[/-](?P<y>\d{2})(?!\d)")
_TITLE_DATE_RE = re.compile(r"(?P<d>\d{2})-(?P<m>\d{2})-(?P<y>\d{4})")

_MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

TWO_DIGIT_YEAR_PIVOT = 50


def parse_time(value: str) -> Optional[float]:
    """Parse a race time into seconds.

    Accepts ``SS.cc`` and ``M:SS.cc`` / ``MM:SS.cc`` with either ``.`` or ``,`` as
    decimal separator. Returns None for anything else (never raises).
    """
    text = norm_cell(value or "").replace(",", ".")
    if not text:
        return None
    m = _TIME_RE.match(text)
    if not m:
        return None

    minutes = int(m.group("min")) if m.group("min") else 0
    if m.group("sec2") is not None:
        seconds = int(m.group("sec2"))
        if seconds >= 60:
            return None
    else:
        seconds = int(m.group("sec"))
    centis = int(m.group("frac").ljust(2, "0"))

    total = round(minutes * 60 + seconds + centis / 100.0, 2)
    if total <= 0:
        return None
    return total


def parse_date(value: str) -> Optional[date]:
    """Parse the date formats seen on the result pages.

    Tried in order: ``DD Mon YYYY``, ``YYYY-MM-DD``, ``DD-MM-YYYY`` / ``DD/MM/YYYY``,
    ``DD-MM-YY`` / ``DD/MM/YY``. Two-digit years >= 50 are 19xx, else 20xx.
    """
    text = norm_cell(value or "")
    if not text:
        return None

    m = _DATE_TEXT_MONTH_RE.search(text)
    if m:
        month = _MONTHS.get(m.group("mon").lower())
        if month is not None:
            return _safe_date(int(m.group("y")), month, int(m.group("d")))

    m = _DATE_ISO_RE.search(text)
    if m:
        return _safe_date(int(m.group("y")), int(m.group("m")), int(m.group("d")))

    m = _DATE_DMY4_RE.search(text)
    if m:
        return _safe_date(int(m.group("y")), int(m.group("m")), int(m.group("d")))

    m = _DATE_DMY2_RE.search(text)
    if m:
        return _safe_date(expand_two_digit_year(int(m.group("y"))), int(m.group("m")), int(m.group("d")))

    return None


def parse_title_date(title: str) -> Optional[date]:
    """Date embedded in a link title, e.g. ``"Gezwommen op 29-01-2023"``."""
    m = _TITLE_DATE_RE.search(title or "")
    if not m:
        return None
    return _safe_date(int(m.group("y")), int(m.group("m")), int(m.group("d")))


def expand_two_digit_year(year_2: int) -> int:
    if year_2 >= 100:
        return year_2
    return 1900 + year_2 if year_2 >= TWO_DIGIT_YEAR_PIVOT else 2000 + year_2


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def norm_cell(text: str) -> str:
    s = (text or "").replace("\u00a0", " ").replace("&nbsp;", " ").replace("\r", " ").replace("\n", " ").strip()
    return re.sub(r"\s+", " ", s)


def node_text(node: html.HtmlElement) -> str:
    """Text of a cell, preferring the first link inside it."""
    links = node.xpath(".//a")
    if links:
        return norm_cell(links[0].text_content())
    return norm_cell(node.text_content())


def parse_document(html_text: str) -> Optional[html.HtmlElement]:
    if not (html_text or "").strip():
        return None
    return html.fromstring(html_text)


def split_full_name(name: str) -> Optional[tuple[str, str]]:
    """Split ``"First Last Name"`` into (first, rest); None without a last name."""
    parts = norm_cell(name).split(" ")
    parts = [p for p in parts if p]
    if len(parts) < 2:
        return None
    return (parts[0], " ".join(parts[1:]))


def format_time(seconds: float) -> str:
    total = int(round(float(seconds) * 100))
    total_seconds, centis = divmod(total, 100)
    minutes, sec = divmod(total_seconds, 60)
    if minutes:
        return f"{minutes}:{sec:02d}.{centis:02d}"
    return f"{sec}.{centis:02d}"
