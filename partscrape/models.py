"""Data models for navigation entities, crawl tasks and parts."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from partscrape.config import (
    DEFAULT_CONCURRENCY,
    DELAY_MAX_MS,
    DELAY_MIN_MS,
    PROGRESS_EVERY,
    REQUEST_TIMEOUT_MS,
)

__all__ = [
    "NavigationNode",
    "Brand",
    "ModelCategory",
    "Model",
    "NavigationResult",
    "CrawlTask",
    "RawRecord",
    "ClassifiedPart",
    "UpdatedPart",
    "Changeset",
    "CrawlOptions",
    "utc_now_iso",
]


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


_TRUE_STRINGS = ("true", "1", "yes")


def _stored_bool(value: Any) -> bool:
    """Stock flag from a stored record; strings such as "false" read as False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    if isinstance(value, (int, float)):
        return value == 1
    return False


# =============================================================================
# Navigation
# =============================================================================

@dataclass
class NavigationNode:
    """One menu entry as parsed from the page (brand, category or model)."""

    name: str
    url: str
    children: List["NavigationNode"] = field(default_factory=list)


@dataclass
class Brand:
    name: str
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "url": self.url}


@dataclass
class ModelCategory:
    name: str
    url: str
    brand: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "url": self.url, "brand": self.brand}


@dataclass
class Model:
    """A phone/tablet model; brand and category are flattened names."""

    name: str
    url: str
    brand: str
    model_category: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "brand": self.brand,
            "modelCategory": self.model_category,
        }


@dataclass(frozen=True)
class CrawlTask:
    """One unit of crawl work: fetch and extract one model's listing page."""

    brand: str
    category: str
    model: str
    url: str


@dataclass
class NavigationResult:
    """Flattened navigation tree plus the crawl tasks derived from it."""

    brands: List[Brand] = field(default_factory=list)
    categories: List[ModelCategory] = field(default_factory=list)
    models: List[Model] = field(default_factory=list)
    tasks: List[CrawlTask] = field(default_factory=list)
    dropped_models: int = 0


# =============================================================================
# Listings and parts
# =============================================================================

@dataclass
class RawRecord:
    """A single product listing as extracted from a model page.

    stock_indicator is the text of the dedicated stock element, or None when
    the listing has no such element; markup is the listing's raw HTML, used
    as the fallback for stock detection.
    """

    name: str
    stock_indicator: Optional[str] = None
    markup: str = ""
    image_url: Optional[str] = None
    location_text: Optional[str] = None


@dataclass
class ClassifiedPart:
    """Canonical part record.

    Serialized with the field names used by the stored snapshots
    (modelCategory, type, inStock, imageUrl, scrapedAt).
    """

    brand: str
    model_category: str
    model: str
    name: str
    part_type: str
    in_stock: bool
    image_url: Optional[str] = None
    location: Optional[str] = None
    scraped_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "brand": self.brand,
            "modelCategory": self.model_category,
            "model": self.model,
            "name": self.name,
            "type": self.part_type,
            "inStock": self.in_stock,
            "imageUrl": self.image_url or "",
            "scrapedAt": self.scraped_at,
        }
        if self.location is not None:
            data["location"] = self.location
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassifiedPart":
        """Build a part from a stored record.

        Legacy records may lack type, imageUrl or location.
        """
        return cls(
            brand=str(data.get("brand") or ""),
            model_category=str(data.get("modelCategory") or ""),
            model=str(data.get("model") or ""),
            name=str(data.get("name") or ""),
            part_type=str(data.get("type") or ""),
            in_stock=_stored_bool(data.get("inStock")),
            image_url=data.get("imageUrl") or None,
            location=data.get("location"),
            scraped_at=str(data.get("scrapedAt") or ""),
        )


@dataclass
class UpdatedPart:
    before: ClassifiedPart
    after: ClassifiedPart

    def to_dict(self) -> Dict[str, Any]:
        return {"before": self.before.to_dict(), "after": self.after.to_dict()}


@dataclass
class Changeset:
    """Added/removed/updated diff between two consecutive snapshots."""

    added: List[ClassifiedPart] = field(default_factory=list)
    removed: List[ClassifiedPart] = field(default_factory=list)
    updated: List[UpdatedPart] = field(default_factory=list)
    generated_at: str = field(default_factory=utc_now_iso)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.updated)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "counts": {
                "added": len(self.added),
                "removed": len(self.removed),
                "updated": len(self.updated),
            },
            "added": [p.to_dict() for p in self.added],
            "removed": [p.to_dict() for p in self.removed],
            "updated": [u.to_dict() for u in self.updated],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Changeset":
        return cls(
            added=[ClassifiedPart.from_dict(p) for p in data.get("added", [])],
            removed=[ClassifiedPart.from_dict(p) for p in data.get("removed", [])],
            updated=[
                UpdatedPart(
                    before=ClassifiedPart.from_dict(u["before"]),
                    after=ClassifiedPart.from_dict(u["after"]),
                )
                for u in data.get("updated", [])
            ],
            generated_at=str(data.get("generatedAt") or ""),
        )


# =============================================================================
# Run options
# =============================================================================

@dataclass
class CrawlOptions:
    """Recognized run options (delays and timeout in milliseconds)."""

    concurrency: int = DEFAULT_CONCURRENCY
    min_delay_ms: int = DELAY_MIN_MS
    max_delay_ms: int = DELAY_MAX_MS
    request_timeout_ms: int = REQUEST_TIMEOUT_MS
    progress_every: int = PROGRESS_EVERY

    def validate(self) -> "CrawlOptions":
        """Check option ranges.

        Raises:
            ValueError: If any option is out of range
        """
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.min_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must not be negative")
        if self.min_delay_ms > self.max_delay_ms:
            raise ValueError(
                f"min delay ({self.min_delay_ms}ms) exceeds max delay ({self.max_delay_ms}ms)"
            )
        if self.request_timeout_ms <= 0:
            raise ValueError(f"request timeout must be positive, got {self.request_timeout_ms}")
        if self.progress_every < 1:
            raise ValueError(f"progress_every must be >= 1, got {self.progress_every}")
        return self
