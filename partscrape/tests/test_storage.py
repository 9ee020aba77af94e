"""Tests for the JSON file and SQLite persistence sinks."""

import json
import logging

import pytest

from partscrape.db import SqliteSink, get_connection
from partscrape.errors import PersistenceError
from partscrape.models import (
    Brand,
    Changeset,
    ClassifiedPart,
    CrawlTask,
    Model,
    ModelCategory,
    NavigationResult,
    UpdatedPart,
)
from partscrape.storage import JsonFileSink


def make_part(name="Apple iPhone 12 Battery", part_type="Battery", in_stock=True, location=None):
    return ClassifiedPart(
        brand="Apple",
        model_category="iPhone",
        model="iPhone 12",
        name=name,
        part_type=part_type,
        in_stock=in_stock,
        image_url="https://www.gsmpartscenter.com/media/battery.jpg",
        location=location,
        scraped_at="2024-01-01T00:00:00.000Z",
    )


@pytest.fixture
def navigation():
    return NavigationResult(
        brands=[Brand("Apple", "https://www.gsmpartscenter.com/apple.html")],
        categories=[ModelCategory("iPhone", "https://www.gsmpartscenter.com/apple/iphone.html", "Apple")],
        models=[Model("iPhone 12", "https://www.gsmpartscenter.com/apple/iphone/iphone-12.html",
                      "Apple", "iPhone")],
        tasks=[CrawlTask("Apple", "iPhone", "iPhone 12",
                         "https://www.gsmpartscenter.com/apple/iphone/iphone-12.html")],
    )


@pytest.fixture(params=["json", "sqlite"])
def sink(request, tmp_path):
    if request.param == "json":
        return JsonFileSink(str(tmp_path / "data"))
    return SqliteSink(str(tmp_path / "data" / "parts.db"))


class TestPersistenceSinks:
    """Behavior shared by both sinks."""

    def test_empty_store_reads_as_empty(self, sink):
        assert sink.read_snapshot() == []
        assert sink.read_changeset() is None

    def test_snapshot_round_trip(self, sink):
        parts = [make_part(), make_part(name="Apple iPhone 12 LCD Screen", part_type="LCD Screen",
                                        in_stock=False, location="Warehouse A")]

        sink.write_snapshot(parts)

        assert sorted(sink.read_snapshot(), key=lambda p: p.name) == sorted(parts, key=lambda p: p.name)

    def test_snapshot_replaced(self, sink):
        sink.write_snapshot([make_part(), make_part(name="Old Flex", part_type="Flex")])
        sink.write_snapshot([make_part(in_stock=False)])

        stored = sink.read_snapshot()
        assert len(stored) == 1
        assert stored[0].in_stock is False

    def test_latest_changeset(self, sink):
        sink.write_changeset(Changeset(added=[make_part()], generated_at="2024-01-01T00:00:00.000Z"))
        sink.write_changeset(Changeset(
            updated=[UpdatedPart(before=make_part(), after=make_part(in_stock=False))],
            generated_at="2024-01-02T00:00:00.000Z",
        ))

        latest = sink.read_changeset()
        assert latest.generated_at == "2024-01-02T00:00:00.000Z"
        assert latest.added == []
        assert latest.updated[0].after.in_stock is False

    def test_stats(self, sink, navigation):
        sink.write_navigation(navigation)
        sink.write_snapshot([make_part(), make_part(name="X Flex", part_type="Flex", in_stock=False)])
        sink.write_changeset(Changeset(added=[make_part()], generated_at="2024-01-01T00:00:00.000Z"))

        stats = sink.stats()

        assert stats["store"] == sink.name
        assert (stats["brands"], stats["categories"], stats["models"]) == (1, 1, 1)
        assert stats["parts"] == 2
        assert stats["in_stock"] == 1
        assert stats["last_changeset"] == {"added": 1, "removed": 0, "updated": 0}
        assert stats["last_run"] == "2024-01-01T00:00:00.000Z"


class TestJsonFileSink:
    def test_writes_navigation_files(self, tmp_path, navigation):
        sink = JsonFileSink(str(tmp_path))

        sink.write_navigation(navigation)

        models = json.loads((tmp_path / "models.json").read_text(encoding="utf-8"))
        assert models == [{
            "name": "iPhone 12",
            "url": "https://www.gsmpartscenter.com/apple/iphone/iphone-12.html",
            "brand": "Apple",
            "modelCategory": "iPhone",
        }]
        brands = json.loads((tmp_path / "brands.json").read_text(encoding="utf-8"))
        assert brands == [{"name": "Apple", "url": "https://www.gsmpartscenter.com/apple.html"}]
        assert (tmp_path / "categories.json").exists()

    def test_parts_file_format(self, tmp_path):
        sink = JsonFileSink(str(tmp_path))

        sink.write_snapshot([make_part()])

        text = (tmp_path / "parts.json").read_text(encoding="utf-8")
        assert text.startswith("[\n  {")
        record = json.loads(text)[0]
        assert record == {
            "brand": "Apple",
            "modelCategory": "iPhone",
            "model": "iPhone 12",
            "name": "Apple iPhone 12 Battery",
            "type": "Battery",
            "inStock": True,
            "imageUrl": "https://www.gsmpartscenter.com/media/battery.jpg",
            "scrapedAt": "2024-01-01T00:00:00.000Z",
        }

    def test_reads_legacy_records(self, tmp_path):
        (tmp_path / "parts.json").write_text(json.dumps([
            {"brand": "Apple", "modelCategory": "iPhone", "model": "iPhone 12",
             "name": "Apple iPhone 12 Battery", "inStock": True, "scrapedAt": "2023-01-01T00:00:00.000Z"},
        ]), encoding="utf-8")

        part = JsonFileSink(str(tmp_path)).read_snapshot()[0]

        assert part.part_type == ""
        assert part.image_url is None
        assert part.location is None

    def test_string_stock_flags(self, tmp_path):
        (tmp_path / "parts.json").write_text(json.dumps([
            {"brand": "Apple", "modelCategory": "iPhone", "model": "iPhone 12", "name": "A Battery",
             "type": "Battery", "inStock": "false"},
            {"brand": "Apple", "modelCategory": "iPhone", "model": "iPhone 12", "name": "A Flex",
             "type": "Flex", "inStock": "True"},
            {"brand": "Apple", "modelCategory": "iPhone", "model": "iPhone 12", "name": "A Lens",
             "type": "Lens", "inStock": None},
        ]), encoding="utf-8")

        parts = JsonFileSink(str(tmp_path)).read_snapshot()

        assert [p.in_stock for p in parts] == [False, True, False]

    def test_malformed_records_skipped_with_warning(self, tmp_path, caplog):
        (tmp_path / "parts.json").write_text(json.dumps([
            make_part().to_dict(),
            "not a record",
            42,
        ]), encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="partscrape"):
            parts = JsonFileSink(str(tmp_path)).read_snapshot()

        assert [p.name for p in parts] == ["Apple iPhone 12 Battery"]
        assert "Skipped 2 malformed records" in caplog.text

    def test_corrupt_snapshot_raises(self, tmp_path):
        (tmp_path / "parts.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError):
            JsonFileSink(str(tmp_path)).read_snapshot()

    def test_non_list_snapshot_raises(self, tmp_path):
        (tmp_path / "parts.json").write_text('{"parts": []}', encoding="utf-8")
        with pytest.raises(PersistenceError):
            JsonFileSink(str(tmp_path)).read_snapshot()

    def test_archive_copies_previous_snapshot(self, tmp_path):
        sink = JsonFileSink(str(tmp_path))
        assert sink.archive_snapshot() is None

        sink.write_snapshot([make_part()])
        archived = sink.archive_snapshot()

        assert archived is not None
        archived_files = list((tmp_path / "archive").glob("parts-*.json"))
        assert len(archived_files) == 1
        assert json.loads(archived_files[0].read_text(encoding="utf-8"))[0]["name"] == "Apple iPhone 12 Battery"

    def test_no_temp_files_left(self, tmp_path):
        sink = JsonFileSink(str(tmp_path))
        sink.write_snapshot([make_part()])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["parts.json"]

    def test_write_failure_raises_persistence_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        sink = JsonFileSink(str(blocker / "data"))

        with pytest.raises(PersistenceError):
            sink.write_snapshot([make_part()])


class TestSqliteSink:
    def test_upsert_keeps_row_identity(self, tmp_path):
        db_path = str(tmp_path / "parts.db")
        sink = SqliteSink(db_path)

        sink.write_snapshot([make_part(in_stock=True)])
        with get_connection(db_path) as conn:
            first_id = conn.execute("SELECT id FROM parts").fetchone()["id"]

        sink.write_snapshot([make_part(in_stock=False)])
        with get_connection(db_path) as conn:
            rows = conn.execute("SELECT id, in_stock FROM parts").fetchall()

        assert len(rows) == 1
        assert rows[0]["id"] == first_id
        assert rows[0]["in_stock"] == 0

    def test_every_changeset_kept(self, tmp_path):
        db_path = str(tmp_path / "parts.db")
        sink = SqliteSink(db_path)

        sink.write_changeset(Changeset(added=[make_part()]))
        sink.write_changeset(Changeset())

        with get_connection(db_path) as conn:
            count = conn.execute("SELECT COUNT(*) as count FROM changesets").fetchone()["count"]
        assert count == 2

    def test_navigation_replaced(self, tmp_path, navigation):
        sink = SqliteSink(str(tmp_path / "parts.db"))
        sink.write_navigation(navigation)
        sink.write_navigation(NavigationResult(brands=[Brand("Samsung", "https://www.gsmpartscenter.com/samsung.html")]))

        with get_connection(sink.db_path) as conn:
            names = [row["name"] for row in conn.execute("SELECT name FROM brands")]
            models = conn.execute("SELECT COUNT(*) as count FROM models").fetchone()["count"]
        assert names == ["Samsung"]
        assert models == 0

    def test_archive_is_noop(self, tmp_path):
        assert SqliteSink(str(tmp_path / "parts.db")).archive_snapshot() is None
