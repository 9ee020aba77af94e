"""Reconciliation of a run's parts against the previous snapshot."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from partscrape.models import Changeset, ClassifiedPart, UpdatedPart

__all__ = [
    "UNKNOWN_TYPE",
    "KEY_SEPARATOR",
    "ReconcileResult",
    "composite_key",
    "index_by_key",
    "part_changed",
    "reconcile",
]

# Legacy snapshots may predate type derivation
UNKNOWN_TYPE = "Unknown"
KEY_SEPARATOR = "||"


@dataclass
class ReconcileResult:
    merged: List[ClassifiedPart] = field(default_factory=list)
    changeset: Changeset = field(default_factory=Changeset)
    unchanged: List[ClassifiedPart] = field(default_factory=list)


def composite_key(part: ClassifiedPart) -> str:
    """Identity of a part across runs: brand, category, model, name and type."""
    return KEY_SEPARATOR.join([
        part.brand,
        part.model_category,
        part.model,
        part.name,
        part.part_type or UNKNOWN_TYPE,
    ])


def index_by_key(parts: Iterable[ClassifiedPart]) -> Dict[str, ClassifiedPart]:
    """Map parts by composite key; a later duplicate replaces an earlier one."""
    index: Dict[str, ClassifiedPart] = {}
    for part in parts:
        index[composite_key(part)] = part
    return index


def part_changed(before: ClassifiedPart, after: ClassifiedPart) -> bool:
    """Whether a re-observed part differs in a tracked field.

    Location only counts when the current run reports one.
    """
    if before.in_stock != after.in_stock:
        return True
    if before.name != after.name:
        return True
    if (before.part_type or UNKNOWN_TYPE) != (after.part_type or UNKNOWN_TYPE):
        return True
    if after.location is not None and before.location != after.location:
        return True
    return False


def reconcile(
    current_parts: Iterable[ClassifiedPart],
    previous_snapshot: Iterable[ClassifiedPart],
) -> ReconcileResult:
    """Diff this run's parts against the previous snapshot.

    The merged snapshot keeps previous parts that were not re-observed (a
    failed model page must not erase its parts), carries unchanged parts
    forward as stored, and takes added and updated parts from this run.
    Parts that were not re-observed are also reported as removed.

    Pure: the inputs are not modified and equal inputs give equal results.
    """
    current_map = index_by_key(current_parts)
    previous_map = index_by_key(previous_snapshot)

    changeset = Changeset()
    unchanged: List[ClassifiedPart] = []

    for key, current in current_map.items():
        previous = previous_map.get(key)
        if previous is None:
            changeset.added.append(current)
        elif part_changed(previous, current):
            changeset.updated.append(UpdatedPart(before=previous, after=current))
        else:
            unchanged.append(previous)

    untouched = [part for key, part in previous_map.items() if key not in current_map]
    changeset.removed.extend(untouched)

    merged = untouched + unchanged + changeset.added + [u.after for u in changeset.updated]

    return ReconcileResult(merged=merged, changeset=changeset, unchanged=unchanged)
