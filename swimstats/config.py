from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


SWIMRANKINGS_BASE_URL = "https://www.swimrankings.net"
SWIMRANKINGS_INDEX_URL = f"{SWIMRANKINGS_BASE_URL}/index.php"

SWIMTRACK_BASE_URL = "https://www.swimtrack.nl"
SWIMTRACK_PERSONAL_TIMES_URL = f"{SWIMTRACK_BASE_URL}/ez-pc/perstijden.php"

# Sent with every request; some of the sources answer 503 to non-browser clients.
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

MAX_FETCH_ATTEMPTS = 3
RETRY_BASE_DELAY_S = 1.0

# Reachability probe budget
PROBE_DNS_TIMEOUT_S = 3.0
PROBE_HEAD_TIMEOUT_S = 5.0
PROBE_GET_TIMEOUT_S = 7.0
PROBE_RETRY_DELAY_S = 0.5
PROBE_PATH = "/robots.txt"

# Consecutive network failures before a roster import pauses
MAX_CONSECUTIVE_NETWORK_FAILURES = 3


@dataclass(frozen=True)
class SiteConfig:
    name: str  # "swimrankings" | "swimtrack"
    label: str
    host: str
    base_url: str
    listing_url: str
    timeout_s: float
    request_delay_s: float  # between pages fetched for one swimmer
    swimmer_delay_s: float  # between swimmers in a roster import


SWIMRANKINGS = SiteConfig(
    name="swimrankings",
    label="SwimRankings",
    host="www.swimrankings.net",
    base_url=SWIMRANKINGS_BASE_URL,
    listing_url=f"{SWIMRANKINGS_INDEX_URL}?page=athleteSelect&nationId=0&selectPage=SEARCH",
    timeout_s=60.0,
    request_delay_s=0.3,
    swimmer_delay_s=0.5,
)

SWIMTRACK = SiteConfig(
    name="swimtrack",
    label="SwimTrack",
    host="www.swimtrack.nl",
    base_url=SWIMTRACK_BASE_URL,
    listing_url=SWIMTRACK_PERSONAL_TIMES_URL,
    timeout_s=30.0,
    request_delay_s=0.2,
    swimmer_delay_s=0.2,
)

SITES = {site.name: site for site in (SWIMRANKINGS, SWIMTRACK)}


def site_config(name: str) -> SiteConfig:
    try:
        return SITES[name]
    except KeyError:
        raise ValueError(f"Unknown site: {name!r} (expected one of {', '.join(sorted(SITES))})") from None


def default_data_dir() -> Path:
    return Path("data")


def default_results_db_path() -> Path:
    return default_data_dir() / "swimstats.sqlite3"


def default_roster_path() -> Path:
    return default_data_dir() / "swimmers.json"
