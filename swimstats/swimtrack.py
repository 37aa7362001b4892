from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urljoin

from .config import SWIMTRACK, SiteConfig
from .event_mapping import parse_slag
from .models import RawResult, SwimmerLookup
from .sites import PageFetcher
from .util import norm_cell, parse_document

logger = logging.getLogger(__name__)


_SWIMMER_SELECT_XPATH = "//select[@name='zwemmer' or @id='zwemmer' or @name='swimmer' or @id='swimmer']"
# Times link to the per-event history; "tuss" links are split times.
_TIME_LINK_XPATH = "//a[contains(@href, 'slag=') and contains(@title, 'Gezwommen op') and not(contains(@href, 'tuss'))]"
_PLACEHOLDER_WORDS = ("kies", "select")


@dataclass(frozen=True)
class SwimmerOption:
    name: str
    url: str


def parse_swimmer_options(html_text: str, *, base_url: str) -> list[SwimmerOption]:
    doc = parse_document(html_text)
    if doc is None:
        return []

    selects = doc.xpath(_SWIMMER_SELECT_XPATH) or doc.xpath("//select")
    if not selects:
        return []

    out: list[SwimmerOption] = []
    for option in selects[0].xpath(".//option"):
        name = norm_cell(option.text_content())
        value = (option.get("value") or "").strip()
        if not name or not value:
            continue
        if any(word in name.lower() for word in _PLACEHOLDER_WORDS):
            continue
        out.append(SwimmerOption(name=name, url=urljoin(base_url, value)))
    return out


def match_swimmer(options: list[SwimmerOption], *, first_name: str, last_name: str) -> Optional[SwimmerOption]:
    """Exact (case-insensitive) full-name match first, then both name parts contained."""
    full = norm_cell(f"{first_name} {last_name}").lower()
    for opt in options:
        if opt.name.lower() == full:
            return opt

    first = norm_cell(first_name).lower()
    last = norm_cell(last_name).lower()
    if not first or not last:
        return None
    for opt in options:
        low = opt.name.lower()
        if first in low and last in low:
            return opt
    return None


def parse_personal_times(html_text: str, *, swimmer_name: str, source_url: str) -> list[RawResult]:
    """One record per time link; stroke and distance come from the link's ``slag=`` code."""
    doc = parse_document(html_text)
    if doc is None:
        return []

    out: list[RawResult] = []
    for a in doc.xpath(_TIME_LINK_XPATH):
        href = a.get("href") or ""
        slag = parse_slag(href)
        if slag is None:
            logger.debug("[swimtrack] unreadable slag in %r", href)
            continue
        code, distance_m = slag
        out.append(
            RawResult(
                swimmer_name=swimmer_name,
                event_text=f"{code}{distance_m}",
                time_text=norm_cell(a.text_content()),
                date_text=norm_cell(a.get("title") or "") or None,
                course=None,  # not in the markup
                location=None,
                source_url=source_url,
                stroke_code=code,
                distance_m=distance_m,
            )
        )
    return out


class SwimTrackSource:
    """Anchor-link extraction from the club's personal-times pages.

    The swimmer listing is fetched once per instance and reused for every swimmer.
    """

    def __init__(self, site: SiteConfig = SWIMTRACK, *, sleep: Callable[[float], None] = time.sleep) -> None:
        self.site = site
        self._sleep = sleep
        self._options: Optional[list[SwimmerOption]] = None

    def _swimmer_options(self, fetcher: PageFetcher) -> list[SwimmerOption]:
        if self._options is None:
            options = parse_swimmer_options(fetcher.get(self.site.listing_url), base_url=self.site.listing_url)
            logger.debug("[swimtrack] %d swimmers in listing", len(options))
            self._options = options
        return self._options

    def list_swimmers(self, fetcher: PageFetcher) -> list[str]:
        return [opt.name for opt in self._swimmer_options(fetcher)]

    def fetch_results(self, fetcher: PageFetcher, *, first_name: str, last_name: str) -> SwimmerLookup:
        fresh_listing = self._options is None
        options = self._swimmer_options(fetcher)
        if not options:
            return SwimmerLookup.not_found("Could not find swimmer dropdown on SwimTrack")

        match = match_swimmer(options, first_name=first_name, last_name=last_name)
        if match is None:
            return SwimmerLookup.not_found(f"Swimmer not found: {first_name} {last_name}")

        if fresh_listing:
            self._sleep(self.site.request_delay_s)
        page = fetcher.get(match.url)
        records = parse_personal_times(page, swimmer_name=match.name, source_url=match.url)
        return SwimmerLookup(found=True, source_name=match.name, url=match.url, records=tuple(records))
