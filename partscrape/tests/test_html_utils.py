"""Tests for navigation menu parsing and listing extraction."""

from bs4 import BeautifulSoup

from partscrape.html_utils import (
    clean_text,
    extract_listing_records,
    has_navigation_items,
    parse_navigation_tree,
)

PAGE_URL = "https://www.gsmpartscenter.com/"


class TestParseNavigationTree:
    def test_parses_brand_category_model(self, nav_html):
        html = nav_html({"Apple": {"iPhone": ["iPhone 12", "iPhone 13"]}})

        brands = parse_navigation_tree(html, PAGE_URL)

        assert [b.name for b in brands] == ["Apple"]
        apple = brands[0]
        assert apple.url == "https://www.gsmpartscenter.com/apple.html"
        assert [c.name for c in apple.children] == ["iPhone"]
        models = apple.children[0].children
        assert [m.name for m in models] == ["iPhone 12", "iPhone 13"]
        assert models[0].url == "https://www.gsmpartscenter.com/apple/iphone/iphone-12.html"

    def test_brand_name_is_last_span(self, nav_html):
        brands = parse_navigation_tree(nav_html({"Samsung": {"Galaxy S": ["Galaxy S21"]}}), PAGE_URL)
        assert brands[0].name == "Samsung"

    def test_missing_menu_returns_empty(self):
        assert parse_navigation_tree("<html><body><p>Maintenance</p></body></html>", PAGE_URL) == []

    def test_drops_category_without_models(self, nav_html):
        html = nav_html({"Apple": {"iPhone": ["iPhone 12"], "iPad": []}})
        categories = parse_navigation_tree(html, PAGE_URL)[0].children
        assert [c.name for c in categories] == ["iPhone"]

    def test_drops_brand_without_categories(self, nav_html):
        html = nav_html({"Apple": {"iPhone": ["iPhone 12"]}, "Nokia": {}})
        assert [b.name for b in parse_navigation_tree(html, PAGE_URL)] == ["Apple"]

    def test_drops_models_with_unusable_links(self):
        html = """
        <ul class="groupmenu by-parts">
          <li class="level0"><a class="menu-link" href="/apple.html"><span>Apple</span></a>
            <ul class="level1">
              <li class="level1"><a class="menu-link" href="/apple/iphone.html"><span>iPhone</span></a>
                <div class="level2"><a class="groupdrop-title" href="/apple/iphone/12.html"><span>iPhone 12</span></a></div>
                <div class="level2"><a class="groupdrop-title" href="javascript:void(0)"><span>iPhone X</span></a></div>
                <div class="level2"><a class="groupdrop-title"><span>iPhone 11</span></a></div>
                <div class="level2"><a class="groupdrop-title" href="/apple/iphone/empty.html"><span> </span></a></div>
                <div class="level2"><a class="groupdrop-title" href="https://elsewhere.example.com/x"><span>iPhone 8</span></a></div>
              </li>
            </ul>
          </li>
        </ul>
        """
        models = parse_navigation_tree(html, PAGE_URL)[0].children[0].children
        assert [m.name for m in models] == ["iPhone 12"]

    def test_drops_brand_without_name(self):
        html = """
        <ul class="groupmenu by-parts">
          <li class="level0"><a class="menu-link" href="/x.html"><span></span></a>
            <ul class="level1">
              <li class="level1"><a class="menu-link" href="/x/y.html"><span>Y</span></a>
                <div class="level2"><a class="groupdrop-title" href="/x/y/z.html"><span>Z</span></a></div>
              </li>
            </ul>
          </li>
        </ul>
        """
        assert parse_navigation_tree(html, PAGE_URL) == []

    def test_has_navigation_items(self, nav_html):
        assert has_navigation_items(nav_html({"Apple": {"iPhone": ["iPhone 12"]}}))
        assert not has_navigation_items('<ul class="groupmenu by-parts"></ul>')


class TestExtractListingRecords:
    def test_extracts_name_stock_and_image(self, listing_html):
        html = listing_html([{"name": "Apple iPhone 12 Battery", "stock": "In stock",
                              "image": "/media/battery.jpg"}])

        records = extract_listing_records(html, PAGE_URL + "apple/iphone/iphone-12.html")

        assert len(records) == 1
        record = records[0]
        assert record.name == "Apple iPhone 12 Battery"
        assert record.stock_indicator.strip() == "In stock"
        assert record.image_url == "https://www.gsmpartscenter.com/media/battery.jpg"
        assert "product-item-link" in record.markup

    def test_stock_indicator_none_without_element(self, listing_html):
        html = listing_html([{"name": "Apple iPhone 13 Charging Port Flex",
                              "extra": '<span class="label">Op voorraad</span>'}])
        record = extract_listing_records(html, PAGE_URL)[0]
        assert record.stock_indicator is None
        assert "Op voorraad" in record.markup

    def test_keeps_page_order(self, listing_html):
        html = listing_html([{"name": f"Part {i} Battery"} for i in range(5)])
        names = [r.name for r in extract_listing_records(html, PAGE_URL)]
        assert names == [f"Part {i} Battery" for i in range(5)]

    def test_empty_page(self):
        assert extract_listing_records("<html><body></body></html>", PAGE_URL) == []

    def test_lazy_loaded_image(self):
        html = """
        <ol class="product-items"><li class="product-item"><div class="product-item-info">
          <img class="product-image-photo" src="" data-src="https://cdn.example.com/a.jpg">
          <a class="product-item-link">Battery</a>
          <div class="stock-location">Warehouse  A</div>
        </div></li></ol>
        """
        record = extract_listing_records(html, PAGE_URL)[0]
        assert record.image_url == "https://cdn.example.com/a.jpg"
        assert record.location_text == "Warehouse A"


class TestCleanText:
    def test_collapses_whitespace(self):
        el = BeautifulSoup("<p>  Apple \n iPhone   12 </p>", "html.parser").p
        assert clean_text(el) == "Apple iPhone 12"

    def test_missing_element(self):
        assert clean_text(None) == ""
