"""Concurrent crawl of model listing pages.

A fixed pool of worker threads drains a shared task queue. Each worker owns a
single page session for the whole crawl; sessions are opened before the pool
starts and closed once it has drained, on every exit path.
"""

import logging
import queue
import random
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from partscrape.classifier import Classification, classify
from partscrape.errors import ExtractionError, TaskFetchError
from partscrape.html_utils import extract_listing_records
from partscrape.logging_config import get_logger, log_scrape_event
from partscrape.models import ClassifiedPart, CrawlOptions, CrawlTask, RawRecord
from partscrape.session import Page, PageSession, SessionFactory
from partscrape.shutdown import get_shutdown_handler, shutdown_requested

__all__ = [
    "TaskQueue",
    "ResultAccumulator",
    "TaskFailure",
    "CrawlResult",
    "ProgressCallback",
    "extract_page",
    "run_crawl",
]

logger = get_logger("crawler")

ClassifyFn = Callable[..., Classification]
ProgressCallback = Callable[[int, int, int], None]


class TaskQueue:
    """Thread-safe FIFO of crawl tasks."""

    def __init__(self, tasks: Iterable[CrawlTask] = ()):
        self._queue: "queue.Queue[CrawlTask]" = queue.Queue()
        for task in tasks:
            self._queue.put(task)

    def push(self, task: CrawlTask) -> None:
        self._queue.put(task)

    def pop(self) -> Optional[CrawlTask]:
        """Next task, or None once the queue is empty."""
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def __len__(self) -> int:
        return self._queue.qsize()


@dataclass
class TaskFailure:
    task: CrawlTask
    error: str


class ResultAccumulator:
    """Lock-guarded collection of crawl results shared by all workers.

    Parts are only ever appended. `completed` counts every finished task,
    successful or not; `failed` is the failed subset.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.parts: List[ClassifiedPart] = []
        self.failures: List[TaskFailure] = []
        self.rejected: Counter = Counter()
        self.completed = 0
        self.failed = 0
        self.raw_records = 0

    def record_success(
        self,
        parts: List[ClassifiedPart],
        raw_count: int,
        rejected: Optional[Dict[str, int]] = None,
    ) -> Tuple[int, int]:
        """Add one task's parts; returns (completed, parts found) after the update."""
        with self._lock:
            self.parts.extend(parts)
            self.raw_records += raw_count
            if rejected:
                self.rejected.update(rejected)
            self.completed += 1
            return self.completed, len(self.parts)

    def record_failure(self, task: CrawlTask, error: str) -> Tuple[int, int]:
        """Count one failed task; returns (completed, parts found) after the update."""
        with self._lock:
            self.failures.append(TaskFailure(task=task, error=error))
            self.failed += 1
            self.completed += 1
            return self.completed, len(self.parts)


@dataclass
class CrawlResult:
    """Everything a crawl produced, in completion order."""

    parts: List[ClassifiedPart] = field(default_factory=list)
    total: int = 0
    completed: int = 0
    failed: int = 0
    raw_records: int = 0
    rejected: Dict[str, int] = field(default_factory=dict)
    failures: List[TaskFailure] = field(default_factory=list)
    interrupted: bool = False

    @property
    def succeeded(self) -> int:
        return self.completed - self.failed


def extract_page(page: Page) -> List[RawRecord]:
    """Extract listings from a fetched page.

    Raises:
        ExtractionError: If the page could not be parsed
    """
    try:
        return extract_listing_records(page.html, page.url)
    except Exception as e:
        raise ExtractionError(f"Could not extract listings from {page.url}: {e}") from e


def _report_progress(
    completed: int,
    total: int,
    parts_found: int,
    progress: Optional[ProgressCallback],
) -> None:
    logger.info(f"Progress: {completed}/{total} models crawled, {parts_found} parts found")
    log_scrape_event("crawl_progress", {
        "completed": completed,
        "total": total,
        "parts_found": parts_found,
    }, level=logging.DEBUG, logger_name="partscrape.crawler")
    if progress is not None:
        progress(completed, total, parts_found)


def _record_task_error(task: CrawlTask, error: Exception, results: ResultAccumulator) -> Tuple[int, int]:
    log_scrape_event("task_error", {
        "message": f"Task failed: {task.model}",
        "brand": task.brand,
        "category": task.category,
        "model": task.model,
        "url": task.url,
        "error": str(error),
        "error_type": type(error).__name__,
    }, level=logging.WARNING, logger_name="partscrape.crawler")
    return results.record_failure(task, f"{type(error).__name__}: {error}")


def _process_task(
    task: CrawlTask,
    session: PageSession,
    results: ResultAccumulator,
    options: CrawlOptions,
    classify_fn: ClassifyFn,
) -> Tuple[int, int]:
    time.sleep(random.uniform(options.min_delay_ms, options.max_delay_ms) / 1000)

    try:
        page = session.fetch(task.url, timeout_ms=options.request_timeout_ms)
        records = extract_page(page)

        parts: List[ClassifiedPart] = []
        rejected: Counter = Counter()
        for raw in records:
            outcome = classify_fn(raw, task.brand, task.model, task.category)
            if outcome.accepted:
                parts.append(outcome.part)
            else:
                rejected[outcome.reason] += 1
    except (TaskFetchError, ExtractionError) as e:
        logger.error(f"Error crawling {task.brand} / {task.category} / {task.model}: {e}")
        return _record_task_error(task, e, results)
    except Exception as e:
        # Dead driver connections surface as urllib3/socket errors
        logger.exception(f"Unexpected error crawling {task.brand} / {task.category} / {task.model}: {e}")
        return _record_task_error(task, e, results)

    logger.debug(
        f"{task.brand} / {task.model}: {len(records)} listings, {len(parts)} parts"
    )
    return results.record_success(parts, len(records), rejected)


def _worker_loop(
    session: PageSession,
    tasks: TaskQueue,
    results: ResultAccumulator,
    options: CrawlOptions,
    classify_fn: ClassifyFn,
    total: int,
    progress: Optional[ProgressCallback],
) -> None:
    while not shutdown_requested():
        task = tasks.pop()
        if task is None:
            return

        completed, parts_found = _process_task(task, session, results, options, classify_fn)
        if completed % options.progress_every == 0 and completed < total:
            _report_progress(completed, total, parts_found, progress)


def _close_sessions(sessions: List[PageSession]) -> None:
    for session in sessions:
        try:
            session.close()
        except Exception as e:
            logger.warning(f"Failed to close {session.name} session: {e}")


def run_crawl(
    tasks: List[CrawlTask],
    session_factory: SessionFactory,
    options: Optional[CrawlOptions] = None,
    classify_fn: ClassifyFn = classify,
    progress: Optional[ProgressCallback] = None,
) -> CrawlResult:
    """Crawl every model page and classify its listings.

    A failing task is logged, counted and dropped; it never stops the crawl.

    Args:
        tasks: Model pages to crawl
        session_factory: Opens one page session per worker
        options: Concurrency, delays and timeout (default: CrawlOptions())
        classify_fn: Listing classifier
        progress: Called as (completed, total, parts_found) every
            options.progress_every tasks and once at the end

    Returns:
        CrawlResult; `interrupted` is set when a shutdown signal stopped the
        crawl before the queue drained

    Raises:
        SessionSetupError: If a worker session could not be opened
    """
    options = (options or CrawlOptions()).validate()
    total = len(tasks)
    if total == 0:
        logger.warning("No crawl tasks to run")
        return CrawlResult()

    worker_count = min(options.concurrency, total)
    task_queue = TaskQueue(tasks)
    results = ResultAccumulator()

    sessions: List[PageSession] = []
    try:
        for _ in range(worker_count):
            sessions.append(session_factory())
    except Exception:
        _close_sessions(sessions)
        raise

    def close_all() -> None:
        _close_sessions(sessions)

    handler = get_shutdown_handler()
    handler.register_cleanup(close_all)

    logger.info(f"Crawling {total} models with {worker_count} workers")
    started = time.monotonic()

    try:
        with ThreadPoolExecutor(max_workers=worker_count, thread_name_prefix="crawl-worker") as pool:
            futures = [
                pool.submit(
                    _worker_loop, session, task_queue, results, options,
                    classify_fn, total, progress,
                )
                for session in sessions
            ]
            for future in futures:
                future.result()
    finally:
        handler.unregister_cleanup(close_all)
        _close_sessions(sessions)

    interrupted = results.completed < total and shutdown_requested()
    _report_progress(results.completed, total, len(results.parts), progress)

    duration = time.monotonic() - started
    if interrupted:
        logger.warning(f"Crawl interrupted after {results.completed}/{total} models")
    else:
        logger.info(
            f"Crawl complete: {results.completed - results.failed} succeeded, "
            f"{results.failed} failed, {len(results.parts)} parts in {duration:.1f}s"
        )
    log_scrape_event("crawl_complete", {
        "total": total,
        "completed": results.completed,
        "failed": results.failed,
        "raw_records": results.raw_records,
        "parts_found": len(results.parts),
        "rejected": dict(results.rejected),
        "interrupted": interrupted,
        "duration_seconds": round(duration, 2),
    }, logger_name="partscrape.crawler")

    return CrawlResult(
        parts=list(results.parts),
        total=total,
        completed=results.completed,
        failed=results.failed,
        raw_records=results.raw_records,
        rejected=dict(results.rejected),
        failures=list(results.failures),
        interrupted=interrupted,
    )
