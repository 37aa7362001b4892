from pathlib import Path

import pytest

from swimstats import db as results_db
from swimstats.fetch import FetchError


class FakeFetcher:
    """Serves canned pages by URL; entries that are exceptions are raised instead."""

    def __init__(self, pages):
        self.pages = dict(pages)
        self.requested = []
        self.closed = False

    def get(self, url):
        self.requested.append(url)
        page = self.pages.get(url)
        if page is None:
            raise FetchError(url, "HTTP 404", attempts=1, status_code=404, transient=False)
        if isinstance(page, Exception):
            raise page
        return page

    def close(self):
        self.closed = True


@pytest.fixture
def make_fetcher():
    return FakeFetcher


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "swimstats.sqlite3"


@pytest.fixture
def con(db_path: Path):
    con = results_db.connect(db_path)
    results_db.init_db(con)
    yield con
    con.close()
