"""Command-line interface for the parts crawler."""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from partscrape.config import (
    DATA_DIR,
    DB_PATH,
    DEBUG_HTML_PATH,
    DEFAULT_CONCURRENCY,
    DELAY_MAX_MS,
    DELAY_MIN_MS,
    HEADLESS,
    NAV_SETTLE_SECONDS,
    REQUEST_TIMEOUT_MS,
    ROOT_URL,
)
from partscrape.csv_utils import export_parts_to_csv, filter_parts
from partscrape.db import SqliteSink
from partscrape.errors import NavigationNotFoundError, PersistenceError, SessionSetupError, TaskFetchError
from partscrape.logging_config import get_logger, setup_logging
from partscrape.models import CrawlOptions
from partscrape.pipeline import RunSummary, run_pipeline
from partscrape.session import DRIVERS, make_session_factory
from partscrape.shutdown import handle_signals
from partscrape.storage import JsonFileSink, PersistenceSink

__all__ = ["main", "parse_args", "make_sink", "show_stats", "export_csv"]

logger = get_logger("cli")

EXIT_OK = 0
EXIT_SETUP_FAILED = 1
EXIT_NAVIGATION_NOT_FOUND = 2
EXIT_NETWORK = 3
EXIT_INTERRUPTED = 130

STORES = ("json", "sqlite")


def _bool_arg(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got '{value}'")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Phone parts catalog crawler with change tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Crawl the whole catalog with 5 headless browsers
  python -m partscrape.cli

  # Gentler crawl: 2 workers, 1-2 seconds between requests
  python -m partscrape.cli --concurrency 2 --min-delay-ms 1000 --max-delay-ms 2000

  # Store parts in SQLite instead of JSON files
  python -m partscrape.cli --store sqlite --db data/parts.db

  # Show what is stored
  python -m partscrape.cli --stats

  # Export in-stock Apple parts to CSV
  python -m partscrape.cli --export-csv data/apple.csv --brand apple --in-stock true
        """,
    )

    # Crawl options
    parser.add_argument(
        "--concurrency",
        type=int,
        default=DEFAULT_CONCURRENCY,
        help=f"Number of parallel page sessions (default: {DEFAULT_CONCURRENCY})",
    )
    parser.add_argument(
        "--min-delay-ms",
        type=int,
        default=DELAY_MIN_MS,
        help=f"Minimum delay before each page request (default: {DELAY_MIN_MS})",
    )
    parser.add_argument(
        "--max-delay-ms",
        type=int,
        default=DELAY_MAX_MS,
        help=f"Maximum delay before each page request (default: {DELAY_MAX_MS})",
    )
    parser.add_argument(
        "--request-timeout-ms",
        type=int,
        default=REQUEST_TIMEOUT_MS,
        help=f"Per-page timeout (default: {REQUEST_TIMEOUT_MS})",
    )
    parser.add_argument(
        "--root-url",
        default=ROOT_URL,
        help=f"Homepage holding the navigation menu (default: {ROOT_URL})",
    )
    parser.add_argument(
        "--driver",
        choices=DRIVERS,
        default="browser",
        help="browser: headless Chrome via Selenium (default); http: plain HTTP requests",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        default=not HEADLESS,
        help="Show the browser window (browser driver only)",
    )
    parser.add_argument(
        "--nav-settle-seconds",
        type=float,
        default=NAV_SETTLE_SECONDS,
        help=f"Extra wait for the navigation menu to finish loading (default: {NAV_SETTLE_SECONDS})",
    )
    parser.add_argument(
        "--debug-html",
        default=DEBUG_HTML_PATH,
        help=f"Where to save the homepage when navigation fails (default: {DEBUG_HTML_PATH})",
    )

    # Storage options
    parser.add_argument(
        "--store",
        choices=STORES,
        default="json",
        help="json: whole-collection JSON files (default); sqlite: per-record database",
    )
    parser.add_argument(
        "--data-dir",
        default=DATA_DIR,
        help=f"Directory for JSON files (default: {DATA_DIR})",
    )
    parser.add_argument(
        "--db",
        default=DB_PATH,
        help=f"SQLite database path (default: {DB_PATH})",
    )

    # Info and export commands
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show stored data statistics and exit",
    )
    parser.add_argument(
        "--export-csv",
        metavar="PATH",
        help="Export the stored parts snapshot to CSV and exit",
    )
    parser.add_argument("--brand", help="Export filter: brand name (case-insensitive)")
    parser.add_argument("--model-category", help="Export filter: model category (case-insensitive)")
    parser.add_argument("--model", help="Export filter: model name (case-insensitive)")
    parser.add_argument("--type", dest="part_type", help="Export filter: part type (case-insensitive)")
    parser.add_argument(
        "--in-stock",
        type=_bool_arg,
        metavar="{true,false}",
        help="Export filter: stock status",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Console log level (default: INFO)",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Don't write the JSONL log file",
    )

    args = parser.parse_args(argv)

    try:
        args.options = CrawlOptions(
            concurrency=args.concurrency,
            min_delay_ms=args.min_delay_ms,
            max_delay_ms=args.max_delay_ms,
            request_timeout_ms=args.request_timeout_ms,
        ).validate()
    except ValueError as e:
        parser.error(str(e))

    return args


def make_sink(store: str, data_dir: str = DATA_DIR, db_path: str = DB_PATH) -> PersistenceSink:
    """Build the persistence sink for a store name."""
    if store == "sqlite":
        return SqliteSink(db_path)
    if store == "json":
        return JsonFileSink(data_dir)
    raise ValueError(f"Unknown store '{store}'. Choices: {', '.join(STORES)}")


def show_stats(sink: PersistenceSink) -> Dict[str, Any]:
    """Display stored data statistics."""
    stats = sink.stats()

    print(f"\n{'='*50}")
    print(f"Store: {stats['store']} ({stats['location']})")
    print(f"{'='*50}")
    print(f"\nBrands:     {stats['brands']}")
    print(f"Categories: {stats['categories']}")
    print(f"Models:     {stats['models']}")
    print(f"Parts:      {stats['parts']} ({stats['in_stock']} in stock)")

    print("\nLast run:")
    counts = stats.get("last_changeset")
    if counts:
        print(f"  {stats['last_run']}: {counts['added']} added, "
              f"{counts['removed']} removed, {counts['updated']} updated")
    else:
        print("  No crawl history yet")

    print()
    return stats


def export_csv(sink: PersistenceSink, csv_path: str, args: argparse.Namespace) -> int:
    """Export the stored snapshot, filtered by the CLI filter options."""
    parts = filter_parts(
        sink.read_snapshot(),
        brand=args.brand,
        model_category=args.model_category,
        model=args.model,
        part_type=args.part_type,
        in_stock=args.in_stock,
    )
    if not parts:
        print("No parts to export.")
        return 0

    count = export_parts_to_csv(parts, csv_path)
    print(f"Exported {count} parts to {csv_path}")
    return count


def print_summary(summary: RunSummary) -> None:
    print(f"\n{'='*60}")
    print("CRAWL INTERRUPTED" if summary.interrupted else "CRAWL COMPLETE")
    print(f"{'='*60}")
    print(f"Navigation: {summary.brands} brands, {summary.categories} categories, "
          f"{summary.models} models")
    print(f"Models crawled: {summary.tasks_completed}/{summary.tasks_total} "
          f"({summary.tasks_failed} failed)")
    print(f"Listings seen: {summary.raw_records}, parts kept: {summary.parts_found}")

    if summary.interrupted:
        print("\nSnapshot not updated; run again to complete the crawl.")
        return

    print(f"Changes: {summary.added} added, {summary.removed} removed, "
          f"{summary.updated} updated, {summary.unchanged} unchanged")
    print(f"Snapshot: {summary.snapshot_size} parts")
    if summary.persistence_errors:
        print(f"\nStorage errors ({len(summary.persistence_errors)}):")
        for error in summary.persistence_errors:
            print(f"  - {error}")
    print(f"Duration: {summary.duration_seconds:.1f}s")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)

    setup_logging(
        level=getattr(logging, args.log_level),
        log_to_file=not args.no_log_file,
    )

    sink = make_sink(args.store, data_dir=args.data_dir, db_path=args.db)

    # Handle info commands
    if args.stats or args.export_csv:
        try:
            if args.stats:
                show_stats(sink)
            if args.export_csv:
                export_csv(sink, args.export_csv, args)
        except PersistenceError as e:
            print(f"Error: could not read stored data: {e}", file=sys.stderr)
            return EXIT_SETUP_FAILED
        return EXIT_OK

    session_factory = make_session_factory(args.driver, headless=not args.headed)

    try:
        with handle_signals():
            summary = run_pipeline(
                session_factory,
                sink,
                options=args.options,
                root_url=args.root_url,
                nav_settle_seconds=args.nav_settle_seconds,
                debug_path=args.debug_html,
            )
    except NavigationNotFoundError as e:
        logger.error(f"Navigation not found: {e}")
        print(f"\nError: site structure changed, navigation menu could not be read. {e}",
              file=sys.stderr)
        if e.debug_path:
            print(f"Homepage saved to {e.debug_path} for inspection.", file=sys.stderr)
        return EXIT_NAVIGATION_NOT_FOUND
    except SessionSetupError as e:
        logger.error(f"Session setup failed: {e}")
        print(f"\nError: could not start the {args.driver} driver: {e}", file=sys.stderr)
        return EXIT_SETUP_FAILED
    except TaskFetchError as e:
        logger.error(f"Homepage could not be loaded: {e}")
        print(f"\nError: homepage could not be loaded, possibly a transient network issue: {e}",
              file=sys.stderr)
        return EXIT_NETWORK

    print_summary(summary)

    if summary.interrupted:
        return EXIT_INTERRUPTED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
