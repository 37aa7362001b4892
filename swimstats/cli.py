from __future__ import annotations

import argparse
import logging
import threading
from pathlib import Path

from . import db as results_db
from .config import SITES, default_results_db_path, default_roster_path, site_config
from .fetch import FetchError
from .ingest import ImportOrchestrator, ImportReport, ImportState, InvalidSwimmerName
from .roster import RosterError, load_roster, seed_roster


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m swimstats", description="Swimming results -> SQLite")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    site_choices = sorted(SITES)

    probe = sub.add_parser("probe", help="Check whether a results site answers")
    probe.add_argument("--site", choices=site_choices, required=True)

    imp = sub.add_parser("import", help="Import results for every swimmer in the database")
    imp.add_argument("--site", choices=site_choices, required=True)
    imp.add_argument("--db", type=Path, default=default_results_db_path(), help="SQLite file for results")
    imp.add_argument("--resume-from", type=int, default=None, help="Roster index from a paused or cancelled run")

    one = sub.add_parser("import-swimmer", help="Import results for one swimmer")
    one.add_argument("--site", choices=site_choices, required=True)
    one.add_argument("--db", type=Path, default=default_results_db_path(), help="SQLite file for results")
    one.add_argument("name", help='Full name, e.g. "Anna de Vries"')

    disc = sub.add_parser("discover", help="Add the swimmers listed on a site to the database")
    disc.add_argument("--site", choices=site_choices, required=True)
    disc.add_argument("--db", type=Path, default=default_results_db_path(), help="SQLite file for results")

    seed = sub.add_parser("seed-roster", help="Add the swimmers from a roster JSON file to the database")
    seed.add_argument("--roster", type=Path, default=default_roster_path(), help="Roster JSON file")
    seed.add_argument("--db", type=Path, default=default_results_db_path(), help="SQLite file for results")

    stats = sub.add_parser("stats", help="Row counts in the database")
    stats.add_argument("--db", type=Path, default=default_results_db_path(), help="SQLite file for results")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "probe":
        site = site_config(args.site)
        ok = ImportOrchestrator(site, db_path=default_results_db_path()).probe_reachable()
        print(f"{site.label}: {'reachable' if ok else 'unreachable'}")
        return 0 if ok else 1

    if args.cmd == "import":
        args.db.parent.mkdir(parents=True, exist_ok=True)
        orchestrator = ImportOrchestrator(site_config(args.site), db_path=args.db)
        cancel = threading.Event()

        def _progress(index: int, total: int, status: str) -> None:
            print(f"[{index}/{total}] {status}")

        future = orchestrator.start_background(_progress, cancel, args.resume_from)
        try:
            report = future.result()
        except KeyboardInterrupt:
            print("Stopping after the current swimmer ...")
            cancel.set()
            report = future.result()
        _print_report(report)
        return 0 if report.state == ImportState.COMPLETED else 1

    if args.cmd == "import-swimmer":
        args.db.parent.mkdir(parents=True, exist_ok=True)
        orchestrator = ImportOrchestrator(site_config(args.site), db_path=args.db)
        try:
            report = orchestrator.import_swimmer_by_name(args.name)
        except InvalidSwimmerName as exc:
            print(f"Error: {exc}")
            return 2
        _print_report(report)
        return 0 if report.state == ImportState.COMPLETED else 1

    if args.cmd == "discover":
        args.db.parent.mkdir(parents=True, exist_ok=True)
        orchestrator = ImportOrchestrator(site_config(args.site), db_path=args.db)
        try:
            res = orchestrator.discover_swimmers()
        except FetchError as exc:
            print(f"Error: {exc}")
            return 1
        print("Discover done:", f"listed={res.listed}", f"created={res.created}", f"skipped={res.skipped_names}", sep=" ")
        return 0

    if args.cmd == "seed-roster":
        try:
            roster = load_roster(args.roster)
        except RosterError as exc:
            print(f"Error: {exc}")
            return 2
        args.db.parent.mkdir(parents=True, exist_ok=True)
        con = results_db.connect(args.db)
        try:
            results_db.init_db(con)
            res = seed_roster(con=con, roster=roster)
        finally:
            con.close()
        print(f"Roster {roster.club_name or '(unnamed)'}:", f"listed={res.listed}", f"created={res.created}", sep=" ")
        return 0

    if args.cmd == "stats":
        con = results_db.connect(args.db)
        try:
            results_db.init_db(con)
            st = results_db.db_stats(con)
        finally:
            con.close()
        print(
            f"swimmers={st.swimmers}",
            f"events={st.events}",
            f"results={st.results}",
            f"estimated_dates={st.estimated_dates}",
            sep=" ",
        )
        return 0

    parser.error(f"Unknown command: {args.cmd}")
    return 2


def _print_report(report: ImportReport) -> None:
    print(
        f"Import {report.state.value}:",
        f"retrieved={report.retrieved}",
        f"new={report.new}",
        f"existing={report.existing}",
        f"succeeded={report.succeeded}",
        f"failed={report.failed}",
        f"not_found={report.not_found}",
        f"skipped_rows={report.skipped_records}",
        f"estimated_dates={report.estimated_dates}",
        sep=" ",
    )
    for failure in report.failures:
        print(f"  - {failure}")
    if report.checkpoint is not None and report.state in (ImportState.PAUSED, ImportState.CANCELLED):
        print(f"Resume with --resume-from {report.checkpoint}")
