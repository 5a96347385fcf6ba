"""Normalization helpers.

Centralizes defensive parsing of provider values: numbers that arrive as
strings, flags that arrive as ``"1"``/``"true"``/``1``, identifiers that
arrive as ints, and device timestamps in several formats.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import UTC, datetime, tzinfo
from typing import Any

# Timestamp fields used to key history entries, in lookup order.
HISTORY_TIMESTAMP_KEYS: tuple[str, ...] = ("ENTRYDATE", "DeviceDate")

# Threshold to distinguish epoch seconds from milliseconds.
_MS_THRESHOLD = 1e11

_TRUE_STRINGS = frozenset({"1", "true", "yes", "y", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "n", "off"})

# Non-ISO layouts observed from older device firmware.
_FALLBACK_FORMATS: tuple[str, ...] = (
    "%d/%m/%Y %H:%M:%S",
    "%d-%m-%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
)


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--":
        return None
    if isinstance(value, bool):
        return float(value)
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def safe_bool(value: Any) -> bool | None:
    """Interpret provider flags (``True``, ``1``, ``"1"``, ``"true"``...)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def first_present(record: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    """Return the value of the first key in *keys* that is present and not None."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def normalize_hwid(value: Any) -> str | None:
    """Canonical join key: stringified and trimmed, case preserved."""
    return safe_str(value)


def parse_device_timestamp(value: Any, *, default_tz: tzinfo = UTC) -> datetime | None:
    """Parse a device timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (``T`` or space separated, optional ``Z`` or
    offset), ``datetime`` objects and epoch seconds or milliseconds.  Values
    without an offset are interpreted in *default_tz*.  Anything else yields
    ``None``.
    """
    if value is None or isinstance(value, bool):
        return None

    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        return _from_epoch(float(value))
    else:
        text = str(value).strip()
        if not text:
            return None
        numeric = safe_float(text)
        if numeric is not None:
            return _from_epoch(numeric)
        parsed_text = _parse_text_timestamp(text)
        if parsed_text is None:
            return None
        parsed = parsed_text

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=default_tz)
    return parsed.astimezone(UTC)


def _parse_text_timestamp(text: str) -> datetime | None:
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _from_epoch(ts: float) -> datetime | None:
    if math.isnan(ts) or ts <= 0:
        return None
    if ts > _MS_THRESHOLD:
        ts /= 1000.0
    try:
        return datetime.fromtimestamp(ts, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def history_timestamp(raw: Mapping[str, Any] | None) -> str | None:
    """Key a raw provider record by its entry or device timestamp."""
    if not isinstance(raw, Mapping):
        return None
    return safe_str(first_present(raw, HISTORY_TIMESTAMP_KEYS))


def is_meaningful(value: Any) -> bool:
    """Return True if the value should be included in a state patch."""

    if value is None:
        return False
    if value == "":
        return False
    if value == {}:
        return False
    return bool(value != [])


def prune_patch(data: Any) -> Any:
    """Recursively drop non-meaningful values from a patch structure.

    A pulled sample that lacks a field must not erase what an earlier sample
    (or a push) already stored for it, so ``None`` never reaches the store.
    """

    if isinstance(data, dict):
        pruned: dict[str, Any] = {}
        for key, value in data.items():
            cleaned = prune_patch(value)
            if is_meaningful(cleaned):
                pruned[key] = cleaned
        return pruned

    if isinstance(data, list):
        items: list[Any] = []
        for item in data:
            cleaned = prune_patch(item)
            if is_meaningful(cleaned):
                items.append(cleaned)
        return items

    return data
