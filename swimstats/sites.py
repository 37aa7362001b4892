from __future__ import annotations

from typing import Callable, Protocol

from .config import SiteConfig
from .models import SwimmerLookup


class PageFetcher(Protocol):
    def get(self, url: str) -> str: ...


class SiteStrategy(Protocol):
    """What the orchestrator needs from a result site."""

    site: SiteConfig

    def list_swimmers(self, fetcher: PageFetcher) -> list[str]: ...

    def fetch_results(self, fetcher: PageFetcher, *, first_name: str, last_name: str) -> SwimmerLookup: ...


def make_strategy(site: SiteConfig, *, sleep: Callable[[float], None]) -> SiteStrategy:
    if site.name == "swimrankings":
        from .swimrankings import SwimRankingsSource

        return SwimRankingsSource(site, sleep=sleep)
    if site.name == "swimtrack":
        from .swimtrack import SwimTrackSource

        return SwimTrackSource(site, sleep=sleep)
    raise ValueError(f"No extraction strategy for site {site.name!r}")
