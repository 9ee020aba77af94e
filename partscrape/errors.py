"""Exception types raised across the crawl run."""

from typing import Optional

__all__ = [
    "ScrapeError",
    "NavigationNotFoundError",
    "SessionSetupError",
    "TaskFetchError",
    "PageWaitTimeout",
    "ExtractionError",
    "PersistenceError",
]


class ScrapeError(Exception):
    """Base class for crawler errors."""
    pass


class NavigationNotFoundError(ScrapeError):
    """The navigation menu is missing or yielded no usable brands.

    Fatal: usually means the site's markup changed upstream.
    """

    def __init__(self, message: str, debug_path: Optional[str] = None):
        super().__init__(message)
        self.debug_path = debug_path


class SessionSetupError(ScrapeError):
    """A page session (browser or HTTP) could not be started."""
    pass


class TaskFetchError(ScrapeError):
    """Fetching or rendering one page failed (network, timeout, driver)."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{message} ({url})")
        self.url = url


class PageWaitTimeout(TaskFetchError):
    """The page loaded but the awaited element never appeared.

    Carries whatever HTML had loaded so callers can dump it for diagnosis.
    """

    def __init__(self, url: str, selector: str, html: str = ""):
        super().__init__(url, f"Timed out waiting for '{selector}'")
        self.selector = selector
        self.html = html


class ExtractionError(ScrapeError):
    """Listing records could not be extracted from a fetched page."""
    pass


class PersistenceError(ScrapeError):
    """Reading from or writing to the persistence sink failed."""
    pass
