"""Phone parts catalog crawler package."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from partscrape.classifier import Classification, classify
from partscrape.config import BASE_URL, DATA_DIR, DB_PATH, ROOT_URL
from partscrape.crawler import CrawlResult, run_crawl
from partscrape.db import SqliteSink
from partscrape.errors import (
    ExtractionError,
    NavigationNotFoundError,
    PageWaitTimeout,
    PersistenceError,
    ScrapeError,
    SessionSetupError,
    TaskFetchError,
)
from partscrape.models import Changeset, ClassifiedPart, CrawlOptions, CrawlTask, RawRecord
from partscrape.navigation import discover_navigation
from partscrape.pipeline import RunSummary, run_pipeline
from partscrape.reconcile import ReconcileResult, reconcile
from partscrape.storage import JsonFileSink, PersistenceSink

__all__ = [
    # Version
    "__version__",
    # Config
    "BASE_URL",
    "ROOT_URL",
    "DATA_DIR",
    "DB_PATH",
    # Models
    "ClassifiedPart",
    "Changeset",
    "CrawlOptions",
    "CrawlTask",
    "RawRecord",
    # Errors
    "ScrapeError",
    "NavigationNotFoundError",
    "SessionSetupError",
    "TaskFetchError",
    "PageWaitTimeout",
    "ExtractionError",
    "PersistenceError",
    # Core functions
    "classify",
    "Classification",
    "discover_navigation",
    "run_crawl",
    "CrawlResult",
    "reconcile",
    "ReconcileResult",
    "run_pipeline",
    "RunSummary",
    # Storage
    "PersistenceSink",
    "JsonFileSink",
    "SqliteSink",
]
