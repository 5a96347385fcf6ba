"""Shared helpers for TOR IoT endpoint modules.

The provider is inconsistent about where it puts the payload: some endpoints
return a bare array, others nest it under ``data`` or ``result``.  These
helpers locate records and the optional total count in any of those shapes.

It is internal to torfleet and may change at any time.
"""

from __future__ import annotations

from typing import Any

from torfleet.exceptions import TorApiError
from torfleet.ingestion.normalize import safe_int

# Containers the provider may nest records under, in lookup order.
_RECORD_CONTAINERS: tuple[str, ...] = ("data", "result")
_TOTAL_KEYS: tuple[str, ...] = ("totalCount", "totalRecords", "total", "TotalCount", "TotalRecords")


def unwrap_records(endpoint: str, body: Any) -> list[Any]:
    """Return the list of records carried by a response body.

    Entries are returned as sent, since the raw page length decides when
    pagination ends; callers drop non-object entries afterwards.  An
    envelope without any array raises :class:`TorApiError`, except ``null``
    containers which mean "no records".
    """
    items: Any = None
    if isinstance(body, list):
        items = body
    elif isinstance(body, dict):
        for key in _RECORD_CONTAINERS:
            if key not in body:
                continue
            candidate = body[key]
            if candidate is None:
                return []
            if isinstance(candidate, list):
                items = candidate
                break
            # e.g. {"result": {"data": [...]}}
            if isinstance(candidate, dict):
                nested = _first_list(candidate)
                if nested is not None:
                    items = nested
                    break

    if items is None:
        raise TorApiError(f"{endpoint} returned no record array", endpoint=endpoint)
    return list(items)


def _first_list(container: dict[str, Any]) -> list[Any] | None:
    for key in _RECORD_CONTAINERS:
        value = container.get(key)
        if isinstance(value, list):
            return value
    return None


def extract_total(body: Any) -> int | None:
    """Best-effort total record count reported alongside a page."""
    if not isinstance(body, dict):
        return None
    scopes: list[dict[str, Any]] = [body]
    for key in _RECORD_CONTAINERS:
        nested = body.get(key)
        if isinstance(nested, dict):
            scopes.append(nested)
    for scope in scopes:
        for key in _TOTAL_KEYS:
            total = safe_int(scope.get(key))
            if total is not None and total >= 0:
                return total
    return None
