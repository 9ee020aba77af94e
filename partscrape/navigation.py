"""Discovery of the brand → category → model navigation tree."""

from pathlib import Path
from typing import List, Optional, Set
from urllib.parse import urlparse

from partscrape.config import (
    ALLOWED_DOMAINS,
    DEBUG_HTML_PATH,
    NAV_ITEMS_SELECTOR,
    NAV_SETTLE_SECONDS,
    NAV_WAIT_TIMEOUT_MS,
    ROOT_URL,
)
from partscrape.errors import NavigationNotFoundError, PageWaitTimeout
from partscrape.html_utils import parse_navigation_tree
from partscrape.logging_config import get_logger, log_scrape_event
from partscrape.models import Brand, CrawlTask, Model, ModelCategory, NavigationNode, NavigationResult
from partscrape.session import PageSession

__all__ = [
    "discover_navigation",
    "flatten_navigation",
    "save_debug_html",
]

logger = get_logger("navigation")


def save_debug_html(html: str, debug_path: str) -> Optional[str]:
    """Write the page HTML for offline diagnosis; returns the path written."""
    path = Path(debug_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(html or "", encoding="utf-8")
    except OSError as e:
        logger.error(f"Could not save debug HTML to {path}: {e}")
        return None
    logger.error(f"Debug HTML saved to {path}")
    return str(path)


def flatten_navigation(brands: List[NavigationNode]) -> NavigationResult:
    """Flatten the parsed tree into entity lists and one crawl task per model.

    Models whose brand name is blank are dropped and counted.
    """
    result = NavigationResult()

    for brand in brands:
        result.brands.append(Brand(name=brand.name, url=brand.url))
        for category in brand.children:
            result.categories.append(ModelCategory(name=category.name, url=category.url, brand=brand.name))
            for model in category.children:
                if not brand.name or not brand.name.strip():
                    result.dropped_models += 1
                    continue
                result.models.append(Model(
                    name=model.name,
                    url=model.url,
                    brand=brand.name,
                    model_category=category.name,
                ))
                result.tasks.append(CrawlTask(
                    brand=brand.name,
                    category=category.name,
                    model=model.name,
                    url=model.url,
                ))

    if result.dropped_models:
        logger.warning(f"Skipping models with missing brand: {result.dropped_models}")

    return result


def discover_navigation(
    session: PageSession,
    root_url: str = ROOT_URL,
    wait_timeout_ms: int = NAV_WAIT_TIMEOUT_MS,
    settle_seconds: float = NAV_SETTLE_SECONDS,
    debug_path: str = DEBUG_HTML_PATH,
) -> NavigationResult:
    """Load the homepage and build the navigation and crawl task lists.

    Args:
        session: Page session used for the homepage only
        root_url: Site homepage
        wait_timeout_ms: How long to wait for the AJAX menu entries
        settle_seconds: Extra wait after the first entries appear
        debug_path: Where to dump the page when the menu cannot be read

    Returns:
        NavigationResult with at least one brand

    Raises:
        NavigationNotFoundError: If the menu never appeared or held no valid brands
        TaskFetchError: If the homepage itself could not be loaded
    """
    logger.info(f"Loading homepage: {root_url}")
    try:
        page = session.fetch(
            root_url,
            wait_selector=NAV_ITEMS_SELECTOR,
            timeout_ms=wait_timeout_ms,
            settle_seconds=settle_seconds,
        )
    except PageWaitTimeout as e:
        logger.error("Navigation menu not loaded before timeout")
        saved = save_debug_html(e.html, debug_path)
        raise NavigationNotFoundError(
            f"Navigation menu not found: {e}", debug_path=saved
        ) from e

    allowed: Set[str] = set(ALLOWED_DOMAINS)
    host = urlparse(page.url).hostname
    if host:
        allowed.add(host.lower())

    brands = parse_navigation_tree(page.html, page.url, allowed_domains=allowed)
    if not brands:
        saved = save_debug_html(page.html, debug_path)
        raise NavigationNotFoundError(
            "No brands found in navigation. Check selectors.", debug_path=saved
        )

    result = flatten_navigation(brands)
    logger.info(
        f"Found {len(result.brands)} brands, {len(result.categories)} categories, "
        f"{len(result.models)} models in navigation"
    )
    log_scrape_event("navigation_discovered", {
        "brands": len(result.brands),
        "categories": len(result.categories),
        "models": len(result.models),
        "dropped_models": result.dropped_models,
    }, logger_name="partscrape.navigation")

    return result
