"""Deterministic merge and retention policy.

This module intentionally contains *no* payload parsing. The ingestion
boundary produces patches and history entries; the functions here decide how
they land in a stored record.
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any

from torfleet.models.vehicle import HistoryEntry

# Keys a patch may never overwrite.
PROTECTED_KEYS: frozenset[str] = frozenset({"history", "vehicleId", "lastUpdate"})


def merge_patch(target: dict[str, Any], patch: dict[str, Any]) -> None:
    """Shallow merge: keys in the patch overwrite, nested dicts are replaced whole."""
    for key, value in patch.items():
        if key in PROTECTED_KEYS:
            continue
        target[key] = copy.deepcopy(value)


def insertion_index(history: list[HistoryEntry], entry: HistoryEntry) -> int:
    """Position keeping *history* newest-first.

    Entries without a parseable time are treated as newest by arrival and
    go first. Ties keep the newer arrival ahead.
    """
    if entry.recorded_at is None:
        return 0
    for index, existing in enumerate(history):
        if existing.recorded_at is None:
            continue
        if existing.recorded_at <= entry.recorded_at:
            return index
    return len(history)


def evict_overflow(history: list[HistoryEntry], limit: int) -> list[HistoryEntry]:
    """Drop entries beyond *limit* from the old end; returns the evicted ones."""
    if len(history) <= limit:
        return []
    evicted = history[limit:]
    del history[limit:]
    return evicted


def in_range(entry: HistoryEntry, start: datetime | None, end: datetime | None) -> bool:
    """Whether *entry* falls inside the inclusive ``[start, end]`` window."""
    if start is None and end is None:
        return True
    if entry.recorded_at is None:
        return False
    if start is not None and entry.recorded_at < start:
        return False
    return not (end is not None and entry.recorded_at > end)
