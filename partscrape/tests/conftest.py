"""Shared test fixtures: sample site HTML and fake page sessions."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

import pytest
from bs4 import BeautifulSoup

from partscrape.errors import PageWaitTimeout, SessionSetupError, TaskFetchError
from partscrape.models import CrawlOptions
from partscrape.session import Page, PageSession
from partscrape.shutdown import get_shutdown_handler

ROOT_URL = "https://www.gsmpartscenter.com/"

PageResult = Union[str, Exception]


def slug(text: str) -> str:
    return text.lower().replace(" ", "-")


def model_url(brand: str, category: str, model: str) -> str:
    return f"{ROOT_URL}{slug(brand)}/{slug(category)}/{slug(model)}.html"


def build_nav_html(menu: Dict[str, Dict[str, List[str]]]) -> str:
    """Homepage with the brand → category → model menu."""
    brand_items = []
    for brand, categories in menu.items():
        category_items = []
        for category, models in categories.items():
            model_blocks = "".join(
                f'<div class="level2"><a class="groupdrop-title" '
                f'href="/{slug(brand)}/{slug(category)}/{slug(model)}.html"><span>{model}</span></a></div>'
                for model in models
            )
            category_items.append(
                f'<li class="level1"><a class="menu-link" href="/{slug(brand)}/{slug(category)}.html">'
                f'<span>{category}</span></a><div class="groupdrop">{model_blocks}</div></li>'
            )
        brand_items.append(
            f'<li class="level0"><a class="menu-link" href="/{slug(brand)}.html">'
            f'<span class="icon"></span><span>{brand}</span></a>'
            f'<ul class="level1">{"".join(category_items)}</ul></li>'
        )
    return (
        "<html><body><nav>"
        f'<ul class="groupmenu by-parts">{"".join(brand_items)}</ul>'
        "</nav></body></html>"
    )


def build_listing_html(items: List[Dict[str, Optional[str]]]) -> str:
    """Model page with one product listing per item.

    Item keys: name, stock (stock element text, omitted when None), extra
    (additional markup), image.
    """
    rows = []
    for item in items:
        stock = item.get("stock")
        stock_html = f'<div class="stock"><span>{stock}</span></div>' if stock is not None else ""
        image = item.get("image") or "/media/catalog/placeholder.jpg"
        rows.append(
            '<li class="item product product-item"><div class="product-item-info">'
            f'<a class="product-item-photo" href="#"><img class="product-image-photo" src="{image}"></a>'
            f'<strong class="product-item-name"><a class="product-item-link" href="#">{item["name"]}</a></strong>'
            f'{stock_html}{item.get("extra") or ""}'
            "</div></li>"
        )
    return (
        "<html><body>"
        f'<ol class="products list items product-items">{"".join(rows)}</ol>'
        "</body></html>"
    )


class FakeSession(PageSession):
    """Serves canned pages; unknown URLs fail like a 404."""

    name = "fake"

    def __init__(self, pages: Dict[str, PageResult]):
        self.pages = pages
        self.fetched: List[str] = []
        self.closed = False

    def fetch(self, url, wait_selector=None, timeout_ms=30000, settle_seconds=0.0):
        self.fetched.append(url)
        result = self.pages.get(url)
        if isinstance(result, Exception):
            raise result
        if result is None:
            raise TaskFetchError(url, "HTTP error 404")
        if wait_selector and BeautifulSoup(result, "html.parser").select_one(wait_selector) is None:
            raise PageWaitTimeout(url, wait_selector, result)
        return Page(url=url, html=result)

    def close(self):
        self.closed = True


class FakeSessionFactory:
    """Opens FakeSessions over shared pages; can fail after N sessions."""

    def __init__(self, pages: Dict[str, PageResult], fail_after: Optional[int] = None):
        self.pages = pages
        self.fail_after = fail_after
        self.sessions: List[FakeSession] = []

    def __call__(self) -> FakeSession:
        if self.fail_after is not None and len(self.sessions) >= self.fail_after:
            raise SessionSetupError("Could not launch Chrome: chromedriver not found")
        session = FakeSession(self.pages)
        self.sessions.append(session)
        return session

    @property
    def fetched(self) -> List[str]:
        return [url for s in self.sessions for url in s.fetched]


@dataclass
class SampleSite:
    root_url: str
    pages: Dict[str, PageResult] = field(default_factory=dict)

    def factory(self, fail_after: Optional[int] = None) -> FakeSessionFactory:
        return FakeSessionFactory(self.pages, fail_after=fail_after)


SAMPLE_MENU = {
    "Apple": {"iPhone": ["iPhone 12", "iPhone 13"]},
    "Samsung": {"Galaxy S": ["Galaxy S21"]},
}


@pytest.fixture(autouse=True)
def reset_shutdown():
    """Each test starts without a pending shutdown request."""
    handler = get_shutdown_handler()
    handler.reset()
    yield
    handler.reset()


@pytest.fixture
def fast_options():
    return CrawlOptions(concurrency=2, min_delay_ms=0, max_delay_ms=0, request_timeout_ms=1000)


@pytest.fixture
def sample_site():
    """Two brands, three models; iPhone 12 holds a mix of parts and non-parts."""
    site = SampleSite(root_url=ROOT_URL)
    site.pages[ROOT_URL] = build_nav_html(SAMPLE_MENU)
    site.pages[model_url("Apple", "iPhone", "iPhone 12")] = build_listing_html([
        {"name": "Apple iPhone 12 Battery", "stock": "In stock"},
        {"name": "Apple iPhone 12 LCD Screen", "stock": "Out of stock"},
        {"name": "iPhone 12 Back Cover 128GB", "stock": "In stock"},
        {"name": "Apple iPhone 12 Back Cover Case", "stock": "In stock"},
        {"name": "iPhone 12 Screen Repair Tool Kit", "stock": "In stock"},
    ])
    site.pages[model_url("Apple", "iPhone", "iPhone 13")] = build_listing_html([
        {"name": "Apple iPhone 13 Charging Port Flex", "extra": '<span class="label">Op voorraad</span>'},
    ])
    site.pages[model_url("Samsung", "Galaxy S", "Galaxy S21")] = build_listing_html([
        {"name": "Samsung Galaxy S21 Rear Camera", "stock": "Niet op voorraad"},
    ])
    return site


@pytest.fixture
def nav_html():
    return build_nav_html


@pytest.fixture
def listing_html():
    return build_listing_html


@pytest.fixture
def page_url():
    return model_url


@pytest.fixture
def make_session():
    return FakeSession


@pytest.fixture
def make_factory():
    return FakeSessionFactory
