"""Configuration and constants for the parts crawler."""

import os
from pathlib import Path
from typing import FrozenSet

from dotenv import load_dotenv

__all__ = [
    "BASE_URL",
    "ROOT_URL",
    "ALLOWED_DOMAINS",
    "USER_AGENT",
    "HEADERS",
    "DEFAULT_CONCURRENCY",
    "DELAY_MIN_MS",
    "DELAY_MAX_MS",
    "REQUEST_TIMEOUT_MS",
    "NAV_WAIT_TIMEOUT_MS",
    "NAV_SETTLE_SECONDS",
    "PROGRESS_EVERY",
    "HEADLESS",
    "DATA_DIR",
    "DB_PATH",
    "DEBUG_HTML_PATH",
    "NAV_MENU_SELECTOR",
    "NAV_ITEMS_SELECTOR",
    "LISTING_ITEM_SELECTOR",
]

_PROJECT_ROOT = Path(__file__).parent.parent

# Load environment variables from .env file before reading overrides
load_dotenv(dotenv_path=_PROJECT_ROOT / ".env")

BASE_URL = os.getenv("PARTSCRAPE_BASE_URL", "https://www.gsmpartscenter.com")
ROOT_URL = os.getenv("PARTSCRAPE_ROOT_URL", BASE_URL + "/")

# Only pages on these hosts are crawled
ALLOWED_DOMAINS: FrozenSet[str] = frozenset({
    "www.gsmpartscenter.com",
    "gsmpartscenter.com",
})

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)

HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept-Language": "en-US,en;q=0.9",
}

# Worker pool
DEFAULT_CONCURRENCY = int(os.getenv("PARTSCRAPE_CONCURRENCY", "5"))

# Politeness jitter between requests of one worker (milliseconds)
DELAY_MIN_MS = int(os.getenv("PARTSCRAPE_MIN_DELAY_MS", "200"))
DELAY_MAX_MS = int(os.getenv("PARTSCRAPE_MAX_DELAY_MS", "500"))

# Per-fetch timeout (milliseconds)
REQUEST_TIMEOUT_MS = int(os.getenv("PARTSCRAPE_REQUEST_TIMEOUT_MS", "30000"))

# The navigation menu is filled in by AJAX after the homepage loads
NAV_WAIT_TIMEOUT_MS = int(os.getenv("PARTSCRAPE_NAV_WAIT_TIMEOUT_MS", "30000"))
NAV_SETTLE_SECONDS = float(os.getenv("PARTSCRAPE_NAV_SETTLE_SECONDS", "5"))

# Log progress every N completed crawl tasks
PROGRESS_EVERY = 10

HEADLESS = os.getenv("PARTSCRAPE_HEADLESS", "1").strip().lower() in ("1", "true", "yes")

# Output paths
DATA_DIR = os.getenv("PARTSCRAPE_DATA_DIR", str(_PROJECT_ROOT / "data"))
DB_PATH = os.getenv("PARTSCRAPE_DB_PATH", str(Path(DATA_DIR) / "parts.db"))
DEBUG_HTML_PATH = os.getenv("PARTSCRAPE_DEBUG_HTML", "debug-homepage.html")


# =============================================================================
# Page selectors
# =============================================================================

NAV_MENU_SELECTOR = "ul.groupmenu.by-parts"
NAV_ITEMS_SELECTOR = "ul.groupmenu.by-parts li.level0 a.menu-link"

LISTING_ITEM_SELECTOR = (
    "ol.product-items li.product-item .product-item-info, "
    "ol.row.product-items li.product-item .product-item-info"
)
