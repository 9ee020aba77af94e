"""SQLite database schema and helpers for the crawler."""

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Tuple

from partscrape.config import DB_PATH
from partscrape.errors import PersistenceError
from partscrape.logging_config import get_logger
from partscrape.models import Changeset, ClassifiedPart, NavigationResult
from partscrape.storage import PersistenceSink

__all__ = [
    "DEFAULT_DB_PATH",
    "get_connection",
    "init_db",
    "upsert_part",
    "get_all_parts",
    "get_part_count",
    "insert_changeset",
    "get_latest_changeset",
    "SqliteSink",
]

logger = get_logger("db")

# Default database path
DEFAULT_DB_PATH = DB_PATH

PartKey = Tuple[str, str, str, str, str]


@contextmanager
def get_connection(db_path: str = DEFAULT_DB_PATH) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for database connections."""
    # Ensure directory exists
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS brands (
                name TEXT PRIMARY KEY,
                url TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS categories (
                brand TEXT NOT NULL,
                name TEXT NOT NULL,
                url TEXT NOT NULL,
                PRIMARY KEY (brand, name)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS models (
                brand TEXT NOT NULL,
                model_category TEXT NOT NULL,
                name TEXT NOT NULL,
                url TEXT NOT NULL,
                PRIMARY KEY (brand, model_category, name)
            )
        """)

        # One row per part identity; rows are updated in place across runs
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS parts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                brand TEXT NOT NULL,
                model_category TEXT NOT NULL,
                model TEXT NOT NULL,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                in_stock INTEGER NOT NULL DEFAULT 0,
                image_url TEXT,
                location TEXT,
                scraped_at TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (brand, model_category, model, name, type)
            )
        """)

        # Every run's changeset is kept
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS changesets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                generated_at TEXT NOT NULL,
                added_count INTEGER NOT NULL,
                removed_count INTEGER NOT NULL,
                updated_count INTEGER NOT NULL,
                payload_json TEXT NOT NULL
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_parts_brand ON parts(brand)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_parts_model ON parts(brand, model)")

        conn.commit()


def _part_params(part: ClassifiedPart) -> Tuple[Any, ...]:
    return (
        part.brand, part.model_category, part.model, part.name, part.part_type,
        int(part.in_stock), part.image_url, part.location, part.scraped_at,
    )


def _part_key(part: ClassifiedPart) -> PartKey:
    return (part.brand, part.model_category, part.model, part.name, part.part_type)


def upsert_part(cursor: sqlite3.Cursor, part: ClassifiedPart) -> None:
    """Insert a part or update the row with the same identity."""
    cursor.execute("""
        INSERT INTO parts (brand, model_category, model, name, type,
                           in_stock, image_url, location, scraped_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(brand, model_category, model, name, type) DO UPDATE SET
            in_stock = excluded.in_stock,
            image_url = excluded.image_url,
            location = excluded.location,
            scraped_at = excluded.scraped_at,
            updated_at = CURRENT_TIMESTAMP
    """, _part_params(part))


def _row_to_part(row: sqlite3.Row) -> ClassifiedPart:
    return ClassifiedPart(
        brand=row["brand"],
        model_category=row["model_category"],
        model=row["model"],
        name=row["name"],
        part_type=row["type"],
        in_stock=bool(row["in_stock"]),
        image_url=row["image_url"],
        location=row["location"],
        scraped_at=row["scraped_at"] or "",
    )


def get_all_parts(
    db_path: str = DEFAULT_DB_PATH,
    brand: Optional[str] = None,
) -> List[ClassifiedPart]:
    """Retrieve all stored parts, optionally for one brand."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        if brand:
            cursor.execute("SELECT * FROM parts WHERE brand = ? ORDER BY id", (brand,))
        else:
            cursor.execute("SELECT * FROM parts ORDER BY id")
        return [_row_to_part(row) for row in cursor.fetchall()]


def get_part_count(db_path: str = DEFAULT_DB_PATH, in_stock: Optional[bool] = None) -> int:
    """Get the number of stored parts.

    Args:
        db_path: Path to database.
        in_stock: Optional stock filter.
    """
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        if in_stock is None:
            cursor.execute("SELECT COUNT(*) as count FROM parts")
        else:
            cursor.execute("SELECT COUNT(*) as count FROM parts WHERE in_stock = ?", (int(in_stock),))
        return cursor.fetchone()["count"]


def insert_changeset(db_path: str, changeset: Changeset) -> int:
    """Store a changeset as a new row, returning its ID."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO changesets (generated_at, added_count, removed_count, updated_count, payload_json)
            VALUES (?, ?, ?, ?, ?)
        """, (
            changeset.generated_at,
            len(changeset.added),
            len(changeset.removed),
            len(changeset.updated),
            json.dumps(changeset.to_dict(), ensure_ascii=False),
        ))
        conn.commit()
        return cursor.lastrowid


def get_latest_changeset(db_path: str = DEFAULT_DB_PATH) -> Optional[Changeset]:
    """Get the most recently stored changeset."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT payload_json FROM changesets ORDER BY id DESC LIMIT 1")
        row = cursor.fetchone()
        if row is None:
            return None
        return Changeset.from_dict(json.loads(row["payload_json"]))


def _count_rows(db_path: str, table: str) -> int:
    # Table names come from the fixed schema above, never from input
    with get_connection(db_path) as conn:
        return conn.execute(f"SELECT COUNT(*) as count FROM {table}").fetchone()["count"]


class SqliteSink(PersistenceSink):
    """Per-record SQLite store keyed by (brand, model_category, model, name, type)."""

    name = "sqlite"

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path
        self._initialized = False

    def location(self) -> str:
        return self.db_path

    def _ensure_schema(self) -> None:
        if not self._initialized:
            init_db(self.db_path)
            self._initialized = True

    def write_navigation(self, navigation: NavigationResult) -> None:
        try:
            self._ensure_schema()
            with get_connection(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM brands")
                cursor.execute("DELETE FROM categories")
                cursor.execute("DELETE FROM models")
                cursor.executemany(
                    "INSERT OR REPLACE INTO brands (name, url) VALUES (?, ?)",
                    [(b.name, b.url) for b in navigation.brands],
                )
                cursor.executemany(
                    "INSERT OR REPLACE INTO categories (brand, name, url) VALUES (?, ?, ?)",
                    [(c.brand, c.name, c.url) for c in navigation.categories],
                )
                cursor.executemany(
                    "INSERT OR REPLACE INTO models (brand, model_category, name, url) VALUES (?, ?, ?, ?)",
                    [(m.brand, m.model_category, m.name, m.url) for m in navigation.models],
                )
                conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Could not write navigation to {self.db_path}: {e}") from e

        logger.info(
            f"Saved {len(navigation.brands)} brands, {len(navigation.categories)} categories "
            f"and {len(navigation.models)} models to {self.db_path}"
        )

    def read_snapshot(self) -> List[ClassifiedPart]:
        if not Path(self.db_path).exists():
            return []
        try:
            self._ensure_schema()
            return get_all_parts(self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Could not read parts from {self.db_path}: {e}") from e

    def write_snapshot(self, parts: List[ClassifiedPart]) -> None:
        keep = {_part_key(p) for p in parts}
        try:
            self._ensure_schema()
            with get_connection(self.db_path) as conn:
                cursor = conn.cursor()
                for part in parts:
                    upsert_part(cursor, part)

                cursor.execute("SELECT id, brand, model_category, model, name, type FROM parts")
                stale = [
                    (row["id"],) for row in cursor.fetchall()
                    if (row["brand"], row["model_category"], row["model"], row["name"], row["type"]) not in keep
                ]
                if stale:
                    cursor.executemany("DELETE FROM parts WHERE id = ?", stale)
                conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Could not write parts to {self.db_path}: {e}") from e

        logger.info(f"Saved {len(parts)} parts to {self.db_path}")

    def write_changeset(self, changeset: Changeset) -> None:
        try:
            self._ensure_schema()
            insert_changeset(self.db_path, changeset)
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Could not write changeset to {self.db_path}: {e}") from e

    def read_changeset(self) -> Optional[Changeset]:
        if not Path(self.db_path).exists():
            return None
        try:
            self._ensure_schema()
            return get_latest_changeset(self.db_path)
        except (sqlite3.Error, OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read changeset from {self.db_path}: {e}") from e

    def archive_snapshot(self) -> Optional[str]:
        # History lives in the changesets table
        return None

    def stats(self) -> Dict[str, Any]:
        base: Dict[str, Any] = {"store": self.name, "location": self.location()}
        if not Path(self.db_path).exists():
            return {**base, "brands": 0, "categories": 0, "models": 0, "parts": 0,
                    "in_stock": 0, "last_changeset": None, "last_run": None}
        try:
            self._ensure_schema()
            changeset = get_latest_changeset(self.db_path)
            return {
                **base,
                "brands": _count_rows(self.db_path, "brands"),
                "categories": _count_rows(self.db_path, "categories"),
                "models": _count_rows(self.db_path, "models"),
                "parts": get_part_count(self.db_path),
                "in_stock": get_part_count(self.db_path, in_stock=True),
                "last_changeset": changeset.to_dict()["counts"] if changeset else None,
                "last_run": changeset.generated_at if changeset else None,
            }
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Could not read stats from {self.db_path}: {e}") from e
