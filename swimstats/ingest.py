from __future__ import annotations

import logging
import sqlite3
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Protocol

from . import db as results_db
from .config import MAX_CONSECUTIVE_NETWORK_FAILURES, SiteConfig
from .dedup import MergeCounts, merge_results
from .fetch import FetchError, ResilientFetcher
from .models import Swimmer
from .normalize import EventResolver, NormalizedBatch, normalize_records
from .probe import probe_reachable
from .sites import PageFetcher, SiteStrategy, make_strategy
from .util import norm_cell, split_full_name

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


class InvalidSwimmerName(ValueError):
    pass


class ImportState(str, Enum):
    IDLE = "idle"
    PROBING = "probing"
    UNREACHABLE = "unreachable"
    RUNNING = "running"
    CANCELLED = "cancelled"
    PAUSED = "paused"
    COMPLETED_WITH_FAILURES = "completed_with_failures"
    COMPLETED = "completed"


@dataclass
class ImportReport:
    site: str
    state: ImportState = ImportState.IDLE
    total: int = 0
    retrieved: int = 0
    new: int = 0
    existing: int = 0
    succeeded: int = 0
    failed: int = 0
    not_found: int = 0
    skipped_records: int = 0
    estimated_dates: int = 0
    # Roster index to pass back as ``resume_from`` after a pause or cancel.
    checkpoint: Optional[int] = None
    failures: list[str] = field(default_factory=list)

    def add(self, counts: MergeCounts, batch: NormalizedBatch) -> None:
        self.retrieved += counts.retrieved
        self.new += counts.new
        self.existing += counts.existing
        self.skipped_records += batch.skipped
        self.estimated_dates += batch.estimated_dates

    def finish(self) -> None:
        self.state = ImportState.COMPLETED_WITH_FAILURES if self.failed else ImportState.COMPLETED


@dataclass(frozen=True)
class DiscoverSummary:
    listed: int
    created: int
    skipped_names: int


def _default_fetcher(site: SiteConfig) -> ResilientFetcher:
    return ResilientFetcher(timeout_s=site.timeout_s)


class ImportOrchestrator:
    """Batch and single-swimmer imports from one result site into the SQLite store.

    Every import opens its own fetcher and database connection and closes both
    when it ends. Work is sequential; the only concurrency is
    :meth:`start_background`, which moves a whole roster import onto one worker
    thread.

    ``on_network_trouble`` is asked what to do after repeated network failures.
    It receives the checkpoint index and returns True to retry from there or
    False to cancel. Without it the run stops in ``paused``.
    """

    def __init__(
        self,
        site: SiteConfig,
        *,
        db_path: Path,
        fetcher_factory: Optional[Callable[[SiteConfig], PageFetcher]] = None,
        strategy_factory: Optional[Callable[[SiteConfig], SiteStrategy]] = None,
        probe: Callable[[SiteConfig], bool] = probe_reachable,
        sleep: Callable[[float], None] = time.sleep,
        on_network_trouble: Optional[Callable[[int], bool]] = None,
    ) -> None:
        self.site = site
        self.db_path = db_path
        self.state = ImportState.IDLE
        self._fetcher_factory = fetcher_factory or _default_fetcher
        self._strategy_factory = strategy_factory or (lambda s: make_strategy(s, sleep=sleep))
        self._probe = probe
        self._sleep = sleep
        self._on_network_trouble = on_network_trouble

    def probe_reachable(self) -> bool:
        self.state = ImportState.PROBING
        ok = bool(self._probe(self.site))
        self.state = ImportState.IDLE if ok else ImportState.UNREACHABLE
        if not ok:
            logger.warning("[%s] site unreachable, import not started", self.site.name)
        return ok

    def import_roster(
        self,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
        resume_from: Optional[int] = None,
    ) -> ImportReport:
        report = ImportReport(site=self.site.name)
        if not self.probe_reachable():
            report.state = ImportState.UNREACHABLE
            return report

        con = results_db.connect(self.db_path)
        fetcher = self._fetcher_factory(self.site)
        try:
            results_db.init_db(con)
            swimmers = results_db.list_swimmers(con)
            report.total = len(swimmers)
            start = int(resume_from or 0)
            if not 0 <= start <= len(swimmers):
                raise ValueError(f"resume_from={start} outside roster of {len(swimmers)}")

            self.state = report.state = ImportState.RUNNING
            logger.info("[%s] importing %d swimmers (from #%d)", self.site.name, len(swimmers) - start, start + 1)
            self._run_roster(
                swimmers,
                start=start,
                con=con,
                fetcher=fetcher,
                strategy=self._strategy_factory(self.site),
                events=EventResolver(con),
                report=report,
                progress=progress,
                cancel=cancel,
            )
        finally:
            _close(fetcher)
            con.close()

        self.state = report.state
        logger.info(
            "[%s] %s: retrieved=%d new=%d existing=%d succeeded=%d failed=%d",
            self.site.name,
            report.state.value,
            report.retrieved,
            report.new,
            report.existing,
            report.succeeded,
            report.failed,
        )
        return report

    def _run_roster(
        self,
        swimmers: list[Swimmer],
        *,
        start: int,
        con: sqlite3.Connection,
        fetcher: PageFetcher,
        strategy: SiteStrategy,
        events: EventResolver,
        report: ImportReport,
        progress: Optional[ProgressCallback],
        cancel: Optional[CancelToken],
    ) -> None:
        total = len(swimmers)
        index = start
        consecutive = 0
        streak_start = start
        while index < total:
            if cancel is not None and cancel.is_set():
                logger.info("[%s] cancelled before swimmer #%d", self.site.name, index + 1)
                report.state = ImportState.CANCELLED
                report.checkpoint = index
                return

            if index > start:
                self._sleep(self.site.swimmer_delay_s)

            swimmer = swimmers[index]
            try:
                status = self._import_one(swimmer, con=con, fetcher=fetcher, strategy=strategy, events=events, report=report)
            except FetchError as exc:
                report.failed += 1
                report.failures.append(f"{swimmer.display_name}: {exc}")
                logger.warning("[%s] %s: %s", self.site.name, swimmer.display_name, exc)
                if exc.transient:
                    if consecutive == 0:
                        streak_start = index
                    consecutive += 1
                    status = f"{swimmer.display_name}: network failure"
                else:
                    # 4xx or bad URL: this swimmer's page, not the network
                    consecutive = 0
                    status = f"{swimmer.display_name}: failed"
            except Exception as exc:  # noqa: BLE001 - one swimmer never stops the batch
                consecutive = 0
                report.failed += 1
                status = f"{swimmer.display_name}: failed"
                report.failures.append(f"{swimmer.display_name}: {type(exc).__name__}: {exc}")
                logger.warning("[%s] %s: %s: %s", self.site.name, swimmer.display_name, type(exc).__name__, exc)
            else:
                consecutive = 0

            if progress is not None:
                progress(index + 1, total, status)

            if consecutive >= MAX_CONSECUTIVE_NETWORK_FAILURES:
                # Streak swimmers get another attempt, so they are not failures yet.
                report.failed -= consecutive
                del report.failures[-consecutive:]
                report.checkpoint = streak_start
                logger.warning(
                    "[%s] %d network failures in a row, pausing at swimmer #%d",
                    self.site.name,
                    consecutive,
                    streak_start + 1,
                )
                if self._on_network_trouble is None:
                    report.state = ImportState.PAUSED
                    return
                if not self._on_network_trouble(streak_start):
                    report.state = ImportState.CANCELLED
                    return
                logger.info("[%s] retrying from swimmer #%d", self.site.name, streak_start + 1)
                consecutive = 0
                report.checkpoint = None
                index = streak_start
                continue

            index += 1

        report.finish()

    def _import_one(
        self,
        swimmer: Swimmer,
        *,
        con: sqlite3.Connection,
        fetcher: PageFetcher,
        strategy: SiteStrategy,
        events: EventResolver,
        report: ImportReport,
    ) -> str:
        lookup = strategy.fetch_results(fetcher, first_name=swimmer.first_name, last_name=swimmer.last_name)
        if not lookup.found:
            report.not_found += 1
            report.failed += 1
            report.failures.append(f"{swimmer.display_name}: {lookup.reason}")
            logger.warning("[%s] %s", self.site.name, lookup.reason)
            return f"{swimmer.display_name}: not found"

        batch = normalize_records(lookup.records, swimmer_id=swimmer.id, events=events)
        counts = merge_results(con=con, swimmer_id=swimmer.id, candidates=batch.candidates)
        report.add(counts, batch)
        report.succeeded += 1
        if lookup.pages_failed:
            logger.info("[%s] %s: %d page(s) skipped", self.site.name, swimmer.display_name, lookup.pages_failed)
        return f"{swimmer.display_name}: {counts.new} new, {counts.existing} existing"

    def import_swimmer(self, first_name: str, last_name: str) -> ImportReport:
        first = norm_cell(first_name)
        last = norm_cell(last_name)
        if not first or not last:
            raise InvalidSwimmerName(f"First and last name are both required, got {first_name!r} {last_name!r}")

        report = ImportReport(site=self.site.name, total=1)
        if not self.probe_reachable():
            report.state = ImportState.UNREACHABLE
            return report

        con = results_db.connect(self.db_path)
        fetcher = self._fetcher_factory(self.site)
        try:
            results_db.init_db(con)
            self.state = report.state = ImportState.RUNNING
            strategy = self._strategy_factory(self.site)
            try:
                lookup = strategy.fetch_results(fetcher, first_name=first, last_name=last)
            except FetchError as exc:
                report.failed += 1
                report.failures.append(str(exc))
                logger.warning("[%s] %s %s: %s", self.site.name, first, last, exc)
            else:
                if not lookup.found:
                    report.not_found += 1
                    report.failed += 1
                    report.failures.append(lookup.reason or "not found")
                    logger.warning("[%s] %s", self.site.name, lookup.reason)
                else:
                    swimmer = results_db.get_or_create_swimmer(con=con, first_name=first, last_name=last)
                    batch = normalize_records(lookup.records, swimmer_id=swimmer.id, events=EventResolver(con))
                    counts = merge_results(con=con, swimmer_id=swimmer.id, candidates=batch.candidates)
                    report.add(counts, batch)
                    report.succeeded += 1
            report.finish()
        finally:
            _close(fetcher)
            con.close()

        self.state = report.state
        return report

    def import_swimmer_by_name(self, full_name: str) -> ImportReport:
        parts = split_full_name(full_name)
        if parts is None:
            raise InvalidSwimmerName(f"Expected 'First Last', got {full_name!r}")
        first, last = parts
        return self.import_swimmer(first, last)

    def discover_swimmers(self) -> DiscoverSummary:
        """Add every swimmer on the site's listing page to the store."""
        con = results_db.connect(self.db_path)
        fetcher = self._fetcher_factory(self.site)
        try:
            results_db.init_db(con)
            names = self._strategy_factory(self.site).list_swimmers(fetcher)
            created = 0
            skipped = 0
            for name in names:
                parts = split_full_name(name)
                if parts is None:
                    skipped += 1
                    logger.debug("[%s] skipping listing name %r", self.site.name, name)
                    continue
                first, last = parts
                if results_db.find_swimmer(con=con, first_name=first, last_name=last) is None:
                    results_db.create_swimmer(con=con, first_name=first, last_name=last)
                    created += 1
        finally:
            _close(fetcher)
            con.close()
        logger.info("[%s] listing: %d names, %d new swimmers", self.site.name, len(names), created)
        return DiscoverSummary(listed=len(names), created=created, skipped_names=skipped)

    def start_background(
        self,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
        resume_from: Optional[int] = None,
    ) -> "Future[ImportReport]":
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"import-{self.site.name}")
        try:
            return pool.submit(self.import_roster, progress, cancel, resume_from)
        finally:
            pool.shutdown(wait=False)


def _close(fetcher: PageFetcher) -> None:
    close = getattr(fetcher, "close", None)
    if close is not None:
        close()
