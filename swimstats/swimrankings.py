from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional
from urllib.parse import urlencode, urljoin

from lxml import html

from .config import SWIMRANKINGS, SWIMRANKINGS_INDEX_URL, SiteConfig
from .event_mapping import classify_stroke, infer_course
from .fetch import FetchError
from .models import Course, RawResult, SwimmerLookup
from .sites import PageFetcher
from .util import node_text, norm_cell, parse_document

logger = logging.getLogger(__name__)


_ATHLETE_ID_RE = re.compile(r"athleteId=(?P<id>\d+)\b", re.IGNORECASE)

_BEST_TABLE_XPATH = "//table[contains(concat(' ', normalize-space(@class), ' '), ' athleteBest ')]"
_RANKING_TABLE_XPATH = "//table[contains(concat(' ', normalize-space(@class), ' '), ' athleteRanking ')]"
_NAV_WORDS = ("select", "home")


@dataclass(frozen=True)
class AthleteLink:
    name: str
    athlete_id: Optional[int]
    url: str


def build_search_url(*, first_name: str, last_name: str) -> str:
    query = urlencode(
        {
            "internalRequest": "athleteFind",
            "athlete_firstname": first_name,
            "athlete_lastname": last_name,
            "athlete_clubId": -1,
            "athlete_gender": -1,
        }
    )
    return f"{SWIMRANKINGS_INDEX_URL}?{query}"


def build_detail_url(*, athlete_id: int, style_id: Optional[int] = None) -> str:
    url = f"{SWIMRANKINGS_INDEX_URL}?page=athleteDetail&athleteId={int(athlete_id)}"
    if style_id is not None:
        url += f"&styleId={int(style_id)}"
    return url


def absolute_url(href: str) -> str:
    href = (href or "").strip()
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(SWIMRANKINGS_INDEX_URL, href)


def parse_athlete_id(url: str) -> Optional[int]:
    m = _ATHLETE_ID_RE.search(url or "")
    return int(m.group("id")) if m else None


def parse_athlete_links(html_text: str) -> list[AthleteLink]:
    """Athlete detail links, in page order, from a search answer or listing page."""
    doc = parse_document(html_text)
    if doc is None:
        return []

    out: list[AthleteLink] = []
    seen: set[str] = set()
    for a in doc.xpath("//a[contains(@href, 'athleteDetail') or contains(@href, 'athleteId')]"):
        name = norm_cell(a.text_content())
        href = a.get("href") or ""
        if not href or len(name) < 2:
            continue
        if any(word in name.lower() for word in _NAV_WORDS):
            continue
        url = absolute_url(href)
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(AthleteLink(name=name, athlete_id=parse_athlete_id(url), url=url))
    return out


def parse_style_options(html_text: str) -> list[tuple[int, str]]:
    """(styleId, label) pairs from the personal-rankings dropdown."""
    doc = parse_document(html_text)
    if doc is None:
        return []

    selects = doc.xpath("//select[@name='rankingStyleId']")
    if not selects:
        # Markup drift: pick the first select that lists swimming events.
        selects = [s for s in doc.xpath("//select") if _looks_like_style_select(s)][:1]
    if not selects:
        return []

    out: list[tuple[int, str]] = []
    for option in selects[0].xpath(".//option"):
        value = (option.get("value") or "").strip()
        if not value.isdigit() or int(value) == 0:
            continue
        out.append((int(value), norm_cell(option.text_content())))
    return out


def _looks_like_style_select(select: html.HtmlElement) -> bool:
    labels = [norm_cell(o.text_content()) for o in select.xpath(".//option")]
    return any(classify_stroke(label) is not None for label in labels)


def parse_ranking_page(
    html_text: str,
    *,
    swimmer_name: str,
    source_url: str,
    event_label: str = "",
) -> list[RawResult]:
    """Rows from the personal-best table or, failing that, the ranking-history tables.

    Personal bests: ``[event, course, time, code, date]``.
    Ranking history: ``[time, code, date, city]``, event taken from ``event_label``.
    """
    doc = parse_document(html_text)
    if doc is None:
        return []

    tables = doc.xpath(_BEST_TABLE_XPATH)
    is_history = False
    if not tables:
        tables = doc.xpath(_RANKING_TABLE_XPATH)
        is_history = True

    out: list[RawResult] = []
    for table in tables:
        block_course = _table_course(table)
        for tr in _data_rows(table):
            cells = tr.xpath("./td")
            if is_history:
                raw = _history_row(cells, course=block_course, event_label=event_label)
            else:
                raw = _best_row(cells, course=block_course)
            if raw is None:
                continue
            event_text, time_text, date_text, course, location = raw
            out.append(
                RawResult(
                    swimmer_name=swimmer_name,
                    event_text=event_text,
                    time_text=time_text,
                    date_text=date_text,
                    course=course,
                    location=location,
                    source_url=source_url,
                )
            )
    return out


_Row = tuple[str, str, Optional[str], Course, Optional[str]]


def _best_row(cells: list[html.HtmlElement], *, course: Optional[Course]) -> Optional[_Row]:
    if len(cells) < 5:
        return None
    event_text = node_text(cells[0])
    time_text = node_text(cells[2])
    if not event_text or not time_text:
        return None
    if course is None:
        course = infer_course(norm_cell(cells[1].text_content()))
    date_text = norm_cell(cells[4].text_content()) or None
    return (event_text, time_text, date_text, course, None)


def _history_row(cells: list[html.HtmlElement], *, course: Optional[Course], event_label: str) -> Optional[_Row]:
    if len(cells) < 3:
        return None
    time_text = node_text(cells[0])
    if not event_label or not time_text:
        return None
    date_text = norm_cell(cells[2].text_content()) or None
    location = norm_cell(cells[3].text_content()) if len(cells) > 3 else ""
    # SwimRankings lists long course unless the head row says otherwise
    return (event_label, time_text, date_text, course or Course.LONG_COURSE, location or None)


def _table_course(table: html.HtmlElement) -> Optional[Course]:
    """Course named in the table's head row; None when the head row has no hint."""
    heads = table.xpath(".//tr[contains(@class, 'Head')]")
    header_text = norm_cell(heads[0].text_content()) if heads else ""
    if not header_text:
        return None
    course = infer_course(header_text, default=Course.LONG_COURSE)
    has_hint = any(k in header_text for k in ("25m", "50m", "Short Course", "Long Course"))
    return course if has_hint else None


def _data_rows(table: html.HtmlElement) -> Iterable[html.HtmlElement]:
    for tr in table.xpath(".//tr"):
        cls = tr.get("class") or ""
        if ("athleteBest" in cls or "athleteRanking" in cls) and "Head" not in cls:
            yield tr


class SwimRankingsSource:
    """Ranking-style extraction: one page per ranking style of the athlete."""

    def __init__(self, site: SiteConfig = SWIMRANKINGS, *, sleep: Callable[[float], None] = time.sleep) -> None:
        self.site = site
        self._sleep = sleep

    def list_swimmers(self, fetcher: PageFetcher) -> list[str]:
        return [link.name for link in parse_athlete_links(fetcher.get(self.site.listing_url))]

    def fetch_results(self, fetcher: PageFetcher, *, first_name: str, last_name: str) -> SwimmerLookup:
        full_name = f"{first_name} {last_name}".strip()
        links = [
            link
            for link in parse_athlete_links(fetcher.get(build_search_url(first_name=first_name, last_name=last_name)))
            if "athleteDetail" in link.url
        ]
        if not links:
            return SwimmerLookup.not_found(f"No results found for {full_name}")

        link = links[0]
        if link.athlete_id is None:
            return SwimmerLookup.not_found(f"Could not extract athlete id from {link.url}")

        detail_html = fetcher.get(link.url)
        styles = parse_style_options(detail_html)
        if not styles:
            logger.debug("[swimrankings] %s: no ranking styles, parsing detail page", full_name)
            records = parse_ranking_page(detail_html, swimmer_name=link.name, source_url=link.url)
            return SwimmerLookup(found=True, source_name=link.name, url=link.url, records=tuple(records))

        records: list[RawResult] = []
        failed = 0
        last_error: Optional[FetchError] = None
        for i, (style_id, label) in enumerate(styles):
            if i > 0:
                self._sleep(self.site.request_delay_s)
            url = build_detail_url(athlete_id=link.athlete_id, style_id=style_id)
            try:
                page = fetcher.get(url)
            except FetchError as exc:
                failed += 1
                last_error = exc
                logger.warning("[swimrankings] %s: skipped style %s (%s): %s", full_name, style_id, label, exc)
                continue
            rows = parse_ranking_page(page, swimmer_name=link.name, source_url=url, event_label=label)
            logger.debug("[swimrankings] %s: style %s (%s) -> %d rows", full_name, style_id, label, len(rows))
            records.extend(rows)

        if last_error is not None and failed == len(styles):
            raise last_error

        return SwimmerLookup(
            found=True,
            source_name=link.name,
            url=link.url,
            records=tuple(records),
            pages_failed=failed,
        )
