"""Page-fetch sessions: a headless browser or a plain HTTP client.

Each crawl worker owns one session for its lifetime. A session fetches a URL,
optionally waits for a CSS selector to appear, and returns the rendered HTML.
Driver and network exceptions are converted to TaskFetchError so callers only
deal with the crawler's own error types.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests  # type: ignore[import-untyped]
from bs4 import BeautifulSoup
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from partscrape.config import HEADERS, HEADLESS, USER_AGENT
from partscrape.errors import PageWaitTimeout, SessionSetupError, TaskFetchError
from partscrape.logging_config import get_logger

__all__ = [
    "Page",
    "PageSession",
    "HttpPageSession",
    "BrowserPageSession",
    "SessionFactory",
    "make_session_factory",
    "DRIVERS",
]

logger = get_logger("session")

DRIVERS = ("browser", "http")


@dataclass
class Page:
    """A fetched page: final URL and rendered HTML."""

    url: str
    html: str


class PageSession:
    """Minimal page-fetch contract shared by browser and HTTP sessions."""

    name: str = "base"

    def fetch(
        self,
        url: str,
        wait_selector: Optional[str] = None,
        timeout_ms: int = 30000,
        settle_seconds: float = 0.0,
    ) -> Page:
        """Load a page.

        Args:
            url: Page to load
            wait_selector: CSS selector that must be present before returning
            timeout_ms: Bound on the load and on the selector wait
            settle_seconds: Extra time for late AJAX content after the wait

        Raises:
            PageWaitTimeout: If wait_selector never appeared
            TaskFetchError: On network, HTTP or driver failures
        """
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def __enter__(self) -> "PageSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class HttpPageSession(PageSession):
    """Fetches server-rendered HTML with a pooled requests.Session."""

    name = "http"

    def __init__(self) -> None:
        self._session = requests.Session()
        self._session.headers.update(HEADERS)
        self._session.headers.setdefault("Accept-Encoding", "gzip, deflate")

    def fetch(
        self,
        url: str,
        wait_selector: Optional[str] = None,
        timeout_ms: int = 30000,
        settle_seconds: float = 0.0,
    ) -> Page:
        try:
            resp = self._session.get(url, timeout=timeout_ms / 1000)
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "unknown"
            raise TaskFetchError(url, f"HTTP error {status}") from e
        except requests.exceptions.Timeout as e:
            raise TaskFetchError(url, f"Timed out after {timeout_ms}ms") from e
        except requests.exceptions.RequestException as e:
            raise TaskFetchError(url, f"Request failed: {e}") from e

        html = resp.text
        # No script execution here, so the selector is either in the HTML or never will be
        if wait_selector and BeautifulSoup(html, "html.parser").select_one(wait_selector) is None:
            raise PageWaitTimeout(url, wait_selector, html)

        return Page(url=resp.url or url, html=html)

    def close(self) -> None:
        self._session.close()


class BrowserPageSession(PageSession):
    """Headless Chrome driven by Selenium, for pages filled in by JavaScript."""

    name = "browser"

    def __init__(self, headless: bool = HEADLESS) -> None:
        options = Options()
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-setuid-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument("--window-size=1920,1080")
        options.add_argument("--disable-blink-features=AutomationControlled")
        options.add_argument(f"--user-agent={USER_AGENT}")
        if headless:
            options.add_argument("--headless=new")
            options.add_argument("--disable-gpu")

        # Exclude automation flags to appear more human-like
        options.add_experimental_option("excludeSwitches", ["enable-automation"])
        options.add_experimental_option("useAutomationExtension", False)

        try:
            self._driver = webdriver.Chrome(options=options)
            self._driver.execute_cdp_cmd("Page.addScriptToEvaluateOnNewDocument", {
                "source": "Object.defineProperty(navigator, 'webdriver', { get: () => false })"
            })
        except WebDriverException as e:
            raise SessionSetupError(f"Could not launch Chrome: {e.msg or e}") from e

    def fetch(
        self,
        url: str,
        wait_selector: Optional[str] = None,
        timeout_ms: int = 30000,
        settle_seconds: float = 0.0,
    ) -> Page:
        timeout_s = timeout_ms / 1000
        driver = self._driver

        try:
            driver.set_page_load_timeout(timeout_s)
            driver.get(url)
            wait = WebDriverWait(driver, timeout_s)
            wait.until(lambda d: d.execute_script("return document.readyState") == "complete")
        except TimeoutException as e:
            raise TaskFetchError(url, f"Page load timed out after {timeout_ms}ms") from e
        except WebDriverException as e:
            raise TaskFetchError(url, f"Browser error: {e.msg or e}") from e

        if wait_selector:
            try:
                WebDriverWait(driver, timeout_s).until(
                    EC.presence_of_element_located((By.CSS_SELECTOR, wait_selector))
                )
            except TimeoutException as e:
                raise PageWaitTimeout(url, wait_selector, self._page_source()) from e

        if settle_seconds > 0:
            time.sleep(settle_seconds)

        try:
            return Page(url=driver.current_url or url, html=driver.page_source)
        except WebDriverException as e:
            raise TaskFetchError(url, f"Could not read page source: {e.msg or e}") from e

    def _page_source(self) -> str:
        try:
            return self._driver.page_source
        except WebDriverException:
            return ""

    def close(self) -> None:
        try:
            self._driver.quit()
        except WebDriverException as e:
            logger.warning(f"Browser did not shut down cleanly: {e.msg or e}")


SessionFactory = Callable[[], PageSession]


def make_session_factory(driver: str = "browser", headless: bool = HEADLESS) -> SessionFactory:
    """Build a factory that opens one new session per call.

    Raises:
        ValueError: If the driver name is unknown
    """
    if driver == "browser":
        return lambda: BrowserPageSession(headless=headless)
    if driver == "http":
        return HttpPageSession
    raise ValueError(f"Unknown driver '{driver}'. Choices: {', '.join(DRIVERS)}")
