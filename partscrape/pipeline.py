"""End-to-end crawl run: navigation, crawl, reconcile, persist.

Navigation failures abort the run before anything is written. Per-task
failures are counted, never fatal. An interrupted crawl skips
reconciliation and writes no snapshot or changeset, so a partial crawl
never becomes the next baseline.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from partscrape.config import DEBUG_HTML_PATH, NAV_SETTLE_SECONDS, NAV_WAIT_TIMEOUT_MS, ROOT_URL
from partscrape.crawler import ProgressCallback, run_crawl
from partscrape.errors import PersistenceError
from partscrape.logging_config import get_logger, log_scrape_event
from partscrape.models import ClassifiedPart, CrawlOptions, NavigationResult, utc_now_iso
from partscrape.navigation import discover_navigation
from partscrape.reconcile import reconcile
from partscrape.session import SessionFactory
from partscrape.storage import PersistenceSink

__all__ = [
    "RunSummary",
    "discover",
    "read_previous_snapshot",
    "run_pipeline",
]

logger = get_logger("pipeline")


@dataclass
class RunSummary:
    """Counts describing one run, logged and printed at the end."""

    started_at: str = field(default_factory=utc_now_iso)
    brands: int = 0
    categories: int = 0
    models: int = 0
    dropped_models: int = 0
    tasks_total: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    raw_records: int = 0
    parts_found: int = 0
    rejected: Dict[str, int] = field(default_factory=dict)
    previous_size: int = 0
    added: int = 0
    removed: int = 0
    updated: int = 0
    unchanged: int = 0
    snapshot_size: int = 0
    archive_path: Optional[str] = None
    persistence_errors: List[str] = field(default_factory=list)
    interrupted: bool = False
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _persistence_failed(action: str, error: PersistenceError, summary: RunSummary) -> None:
    logger.error(f"Failed to {action}: {error}")
    summary.persistence_errors.append(f"{action}: {error}")
    log_scrape_event("persistence_error", {
        "message": f"Failed to {action}",
        "action": action,
        "error": str(error),
    }, level=logging.ERROR, logger_name="partscrape.pipeline")


def discover(
    session_factory: SessionFactory,
    root_url: str = ROOT_URL,
    wait_timeout_ms: int = NAV_WAIT_TIMEOUT_MS,
    settle_seconds: float = NAV_SETTLE_SECONDS,
    debug_path: str = DEBUG_HTML_PATH,
) -> NavigationResult:
    """Run navigation discovery on a session of its own."""
    with session_factory() as session:
        return discover_navigation(
            session,
            root_url=root_url,
            wait_timeout_ms=wait_timeout_ms,
            settle_seconds=settle_seconds,
            debug_path=debug_path,
        )


def read_previous_snapshot(sink: PersistenceSink) -> List[ClassifiedPart]:
    """Previous snapshot, or an empty one if it cannot be read."""
    try:
        previous = sink.read_snapshot()
    except PersistenceError as e:
        logger.warning(f"Could not read previous snapshot, treating as empty: {e}")
        return []
    logger.info(f"Loaded previous snapshot with {len(previous)} parts")
    return previous


def run_pipeline(
    session_factory: SessionFactory,
    sink: PersistenceSink,
    options: Optional[CrawlOptions] = None,
    root_url: str = ROOT_URL,
    nav_wait_timeout_ms: int = NAV_WAIT_TIMEOUT_MS,
    nav_settle_seconds: float = NAV_SETTLE_SECONDS,
    debug_path: str = DEBUG_HTML_PATH,
    progress: Optional[ProgressCallback] = None,
) -> RunSummary:
    """Run one full crawl.

    Args:
        session_factory: Opens page sessions (one for navigation, one per worker)
        sink: Where navigation, snapshot and changeset are stored
        options: Concurrency, delays and timeout
        root_url: Site homepage holding the navigation menu
        nav_wait_timeout_ms: Wait bound for the navigation menu
        nav_settle_seconds: Extra wait for late menu entries
        debug_path: Where to dump the homepage if the menu cannot be read
        progress: Crawl progress callback, as for run_crawl

    Returns:
        RunSummary of the run

    Raises:
        NavigationNotFoundError: If the navigation menu could not be read
        SessionSetupError: If a page session could not be opened
        TaskFetchError: If the homepage could not be loaded
    """
    options = (options or CrawlOptions()).validate()
    summary = RunSummary()
    started = time.monotonic()

    # Step 1: Navigation
    navigation = discover(
        session_factory,
        root_url=root_url,
        wait_timeout_ms=nav_wait_timeout_ms,
        settle_seconds=nav_settle_seconds,
        debug_path=debug_path,
    )
    summary.brands = len(navigation.brands)
    summary.categories = len(navigation.categories)
    summary.models = len(navigation.models)
    summary.dropped_models = navigation.dropped_models

    try:
        sink.write_navigation(navigation)
    except PersistenceError as e:
        _persistence_failed("write navigation", e, summary)

    # Step 2: Crawl
    crawl = run_crawl(navigation.tasks, session_factory, options, progress=progress)
    summary.tasks_total = crawl.total
    summary.tasks_completed = crawl.completed
    summary.tasks_failed = crawl.failed
    summary.raw_records = crawl.raw_records
    summary.parts_found = len(crawl.parts)
    summary.rejected = dict(crawl.rejected)

    if crawl.interrupted:
        summary.interrupted = True
        summary.duration_seconds = round(time.monotonic() - started, 2)
        logger.warning("Run interrupted: skipping reconciliation, snapshot left untouched")
        log_scrape_event("run_complete", summary.to_dict(), level=logging.WARNING,
                         logger_name="partscrape.pipeline")
        return summary

    # Step 3: Reconcile
    previous = read_previous_snapshot(sink)
    result = reconcile(crawl.parts, previous)
    changeset = result.changeset

    summary.previous_size = len(previous)
    summary.added = len(changeset.added)
    summary.removed = len(changeset.removed)
    summary.updated = len(changeset.updated)
    summary.unchanged = len(result.unchanged)
    summary.snapshot_size = len(result.merged)

    logger.info(
        f"Changes: {summary.added} added, {summary.removed} removed, "
        f"{summary.updated} updated, {summary.unchanged} unchanged"
    )
    log_scrape_event("reconcile_complete", {
        "previous_size": summary.previous_size,
        "added": summary.added,
        "removed": summary.removed,
        "updated": summary.updated,
        "unchanged": summary.unchanged,
        "snapshot_size": summary.snapshot_size,
    }, logger_name="partscrape.pipeline")

    # Step 4: Persist
    try:
        summary.archive_path = sink.archive_snapshot()
    except PersistenceError as e:
        _persistence_failed("archive previous snapshot", e, summary)

    try:
        sink.write_snapshot(result.merged)
    except PersistenceError as e:
        _persistence_failed("write snapshot", e, summary)

    try:
        sink.write_changeset(changeset)
    except PersistenceError as e:
        _persistence_failed("write changeset", e, summary)

    summary.duration_seconds = round(time.monotonic() - started, 2)
    log_scrape_event("run_complete", summary.to_dict(), logger_name="partscrape.pipeline")

    return summary
