"""Persistence sinks for navigation data, part snapshots and changesets."""

import json
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from partscrape.config import DATA_DIR
from partscrape.errors import PersistenceError
from partscrape.logging_config import get_logger
from partscrape.models import Changeset, ClassifiedPart, NavigationResult

__all__ = [
    "PersistenceSink",
    "JsonFileSink",
    "BRANDS_FILE",
    "CATEGORIES_FILE",
    "MODELS_FILE",
    "PARTS_FILE",
    "CHANGESET_FILE",
    "ARCHIVE_DIR",
]

logger = get_logger("storage")

BRANDS_FILE = "brands.json"
CATEGORIES_FILE = "categories.json"
MODELS_FILE = "models.json"
PARTS_FILE = "parts.json"
CHANGESET_FILE = "changeset.json"
ARCHIVE_DIR = "archive"


class PersistenceSink:
    """Where a run's results are stored.

    Reads raise PersistenceError when stored data exists but cannot be read;
    a store that has never been written reads as empty.
    """

    name: str = "base"

    def write_navigation(self, navigation: NavigationResult) -> None:
        """Replace stored brands, categories and models."""
        raise NotImplementedError

    def read_snapshot(self) -> List[ClassifiedPart]:
        raise NotImplementedError

    def write_snapshot(self, parts: List[ClassifiedPart]) -> None:
        """Replace the stored part snapshot."""
        raise NotImplementedError

    def write_changeset(self, changeset: Changeset) -> None:
        raise NotImplementedError

    def read_changeset(self) -> Optional[Changeset]:
        """The most recent changeset, or None if no run has written one."""
        raise NotImplementedError

    def archive_snapshot(self) -> Optional[str]:
        """Keep a copy of the current snapshot before it is replaced.

        Returns:
            Where the copy was kept, or None when there was nothing to archive
        """
        raise NotImplementedError

    def stats(self) -> Dict[str, Any]:
        """Counts of stored entities and the latest changeset."""
        raise NotImplementedError

    def location(self) -> str:
        raise NotImplementedError


class JsonFileSink(PersistenceSink):
    """Whole-collection JSON files in one data directory.

    Files: brands.json, categories.json, models.json, parts.json and
    changeset.json, each rewritten atomically.
    """

    name = "json"

    def __init__(self, data_dir: str = DATA_DIR):
        self.data_dir = Path(data_dir)

    def location(self) -> str:
        return str(self.data_dir)

    def _path(self, filename: str) -> Path:
        return self.data_dir / filename

    def _write_json(self, filename: str, payload: Any) -> None:
        path = self._path(filename)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{filename}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Could not write {path}: {e}") from e

        logger.debug(f"Wrote {path}")

    def _read_json(self, filename: str) -> Optional[Any]:
        path = self._path(filename)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read {path}: {e}") from e

    def _read_list(self, filename: str) -> List[Any]:
        data = self._read_json(filename)
        if data is None:
            return []
        if not isinstance(data, list):
            raise PersistenceError(f"Expected a list in {self._path(filename)}")
        return data

    def write_navigation(self, navigation: NavigationResult) -> None:
        self._write_json(BRANDS_FILE, [b.to_dict() for b in navigation.brands])
        self._write_json(CATEGORIES_FILE, [c.to_dict() for c in navigation.categories])
        self._write_json(MODELS_FILE, [m.to_dict() for m in navigation.models])
        logger.info(
            f"Saved {len(navigation.brands)} brands, {len(navigation.categories)} categories "
            f"and {len(navigation.models)} models to {self.data_dir}"
        )

    def read_snapshot(self) -> List[ClassifiedPart]:
        records = self._read_list(PARTS_FILE)
        parts = [ClassifiedPart.from_dict(r) for r in records if isinstance(r, dict)]
        dropped = len(records) - len(parts)
        if dropped:
            logger.warning(f"Skipped {dropped} malformed records in {self._path(PARTS_FILE)}")
        return parts

    def write_snapshot(self, parts: List[ClassifiedPart]) -> None:
        self._write_json(PARTS_FILE, [p.to_dict() for p in parts])
        logger.info(f"Saved {len(parts)} parts to {self._path(PARTS_FILE)}")

    def write_changeset(self, changeset: Changeset) -> None:
        self._write_json(CHANGESET_FILE, changeset.to_dict())

    def read_changeset(self) -> Optional[Changeset]:
        data = self._read_json(CHANGESET_FILE)
        if data is None:
            return None
        if not isinstance(data, dict):
            raise PersistenceError(f"Expected an object in {self._path(CHANGESET_FILE)}")
        return Changeset.from_dict(data)

    def archive_snapshot(self) -> Optional[str]:
        source = self._path(PARTS_FILE)
        if not source.exists():
            return None

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        target = self.data_dir / ARCHIVE_DIR / f"parts-{stamp}.json"
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
        except OSError as e:
            raise PersistenceError(f"Could not archive {source}: {e}") from e

        logger.info(f"Archived previous snapshot to {target}")
        return str(target)

    def stats(self) -> Dict[str, Any]:
        parts = self.read_snapshot()
        changeset = self.read_changeset()
        return {
            "store": self.name,
            "location": self.location(),
            "brands": len(self._read_list(BRANDS_FILE)),
            "categories": len(self._read_list(CATEGORIES_FILE)),
            "models": len(self._read_list(MODELS_FILE)),
            "parts": len(parts),
            "in_stock": sum(1 for p in parts if p.in_stock),
            "last_changeset": changeset.to_dict()["counts"] if changeset else None,
            "last_run": changeset.generated_at if changeset else None,
        }
