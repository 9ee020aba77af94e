"""Filtering and CSV export of stored parts."""

import csv
import os
from typing import Dict, Iterable, List, Optional

from partscrape.logging_config import get_logger
from partscrape.models import ClassifiedPart

__all__ = [
    "CSV_FIELDS",
    "filter_parts",
    "part_to_row",
    "export_parts_to_csv",
]

logger = get_logger("csv")

CSV_FIELDS = [
    "brand", "modelCategory", "model", "name", "type",
    "inStock", "imageUrl", "location", "scrapedAt",
]


def _matches(value: str, wanted: Optional[str]) -> bool:
    return wanted is None or value.lower() == wanted.lower()


def filter_parts(
    parts: Iterable[ClassifiedPart],
    brand: Optional[str] = None,
    model_category: Optional[str] = None,
    model: Optional[str] = None,
    part_type: Optional[str] = None,
    in_stock: Optional[bool] = None,
) -> List[ClassifiedPart]:
    """Select parts matching every given filter.

    String filters compare case-insensitively for equality; None means no
    filter on that field.
    """
    return [
        p for p in parts
        if _matches(p.brand, brand)
        and _matches(p.model_category, model_category)
        and _matches(p.model, model)
        and _matches(p.part_type, part_type)
        and (in_stock is None or p.in_stock == in_stock)
    ]


def part_to_row(part: ClassifiedPart) -> Dict[str, str]:
    """Convert a part into a CSV-ready row."""
    row = part.to_dict()
    row.setdefault("location", "")
    row["inStock"] = "true" if part.in_stock else "false"
    return row


def export_parts_to_csv(parts: Iterable[ClassifiedPart], csv_path: str) -> int:
    """Write parts to a CSV file.

    Args:
        parts: Parts to export
        csv_path: Path for the output CSV file

    Returns:
        Number of parts exported
    """
    rows = [part_to_row(p) for p in parts]

    os.makedirs(os.path.dirname(csv_path) or ".", exist_ok=True)
    with open(csv_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow(row)

    logger.info(f"Exported {len(rows)} parts to {csv_path}")
    return len(rows)
