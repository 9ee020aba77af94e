"""HTML parsing for the navigation menu and model listing pages."""

from typing import List, Optional, Set

from bs4 import BeautifulSoup
from bs4.element import Tag

from partscrape.config import LISTING_ITEM_SELECTOR, NAV_ITEMS_SELECTOR, NAV_MENU_SELECTOR
from partscrape.models import NavigationNode, RawRecord
from partscrape.url_validation import resolve_image_url, resolve_url

__all__ = [
    "clean_text",
    "has_navigation_items",
    "parse_navigation_tree",
    "extract_listing_records",
]

NAME_SELECTOR = ".product-item-link, .product-item-name a, .name, h2, h3"
STOCK_SELECTOR = ".stock, .availability, .in-stock, .stock-status"
IMAGE_SELECTOR = "img.product-image-photo, .product-item-photo img, img"
LOCATION_SELECTOR = ".stock-location, .location, .warehouse"


def clean_text(el: Optional[Tag]) -> str:
    """Element text with whitespace runs collapsed, or '' for a missing element."""
    if el is None:
        return ""
    return " ".join(el.get_text().split())


def has_navigation_items(html: str) -> bool:
    """True when the AJAX-loaded menu entries are present in the page."""
    soup = BeautifulSoup(html, "html.parser")
    return soup.select_one(NAV_ITEMS_SELECTOR) is not None


def _link(anchor: Optional[Tag], page_url: str, allowed_domains: Optional[Set[str]]) -> Optional[str]:
    if anchor is None:
        return None
    href = anchor.get("href")
    if not isinstance(href, str):
        return None
    return resolve_url(href, page_url, allowed_domains=allowed_domains)


def parse_navigation_tree(
    html: str,
    page_url: str,
    allowed_domains: Optional[Set[str]] = None,
) -> List[NavigationNode]:
    """Parse the brand → category → model menu.

    Entries are kept only when complete: a model needs a name and a
    resolvable URL, a category needs a name, URL and at least one model, and
    a brand needs a name, URL and at least one category.

    Args:
        html: Rendered homepage HTML
        page_url: URL the HTML was loaded from (for relative links)
        allowed_domains: Hosts links may point to (default: ALLOWED_DOMAINS)

    Returns:
        Brand nodes, each holding category nodes holding model nodes.
        Empty when the menu container is missing.
    """
    soup = BeautifulSoup(html, "html.parser")
    nav = soup.select_one(NAV_MENU_SELECTOR)
    if nav is None:
        return []

    brands: List[NavigationNode] = []
    for brand_el in nav.select("li.level0"):
        brand_a = brand_el.select_one("a.menu-link")
        brand_name = clean_text(brand_a.select_one("span:last-child")) if brand_a else ""
        brand_url = _link(brand_a, page_url, allowed_domains)

        categories: List[NavigationNode] = []
        for cat_el in brand_el.select("ul.level1 > li.level1"):
            cat_a = cat_el.select_one("a.menu-link")
            cat_name = clean_text(cat_a.select_one("span")) if cat_a else ""
            cat_url = _link(cat_a, page_url, allowed_domains)

            models: List[NavigationNode] = []
            for model_el in cat_el.select("div.level2"):
                model_a = model_el.select_one("a.groupdrop-title")
                model_name = clean_text(model_a.select_one("span")) if model_a else ""
                model_url = _link(model_a, page_url, allowed_domains)
                if model_name and model_url:
                    models.append(NavigationNode(name=model_name, url=model_url))

            if cat_name and cat_url and models:
                categories.append(NavigationNode(name=cat_name, url=cat_url, children=models))

        if brand_name and brand_url and categories:
            brands.append(NavigationNode(name=brand_name, url=brand_url, children=categories))

    return brands


def _image_src(img: Optional[Tag], page_url: str) -> Optional[str]:
    if img is None:
        return None
    for attr in ("src", "data-src"):
        value = img.get(attr)
        if isinstance(value, str) and value.strip():
            resolved = resolve_image_url(value, page_url)
            if resolved:
                return resolved
    return None


def extract_listing_records(html: str, page_url: str) -> List[RawRecord]:
    """Extract every product listing on a model page.

    Args:
        html: Rendered model page HTML
        page_url: URL the HTML was loaded from

    Returns:
        One RawRecord per listing, in page order; unclassified.
    """
    soup = BeautifulSoup(html, "html.parser")
    records: List[RawRecord] = []

    for item in soup.select(LISTING_ITEM_SELECTOR):
        stock_el = item.select_one(STOCK_SELECTOR)
        location_el = item.select_one(LOCATION_SELECTOR)

        records.append(RawRecord(
            name=clean_text(item.select_one(NAME_SELECTOR)),
            stock_indicator=stock_el.get_text() if stock_el is not None else None,
            markup=item.decode_contents(),
            image_url=_image_src(item.select_one(IMAGE_SELECTOR), page_url),
            location_text=clean_text(location_el) or None,
        ))

    return records
