"""Helpers for safe debug logging.

Login bodies carry the provider password, login responses and request
headers carry the bearer token, and a single telemetry page can hold a
thousand records.  :func:`redact_for_log` masks the former and shortens the
latter before anything reaches a DEBUG log.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "pass",
        "token",
        "accesstoken",
        "refreshtoken",
        "authorization",
        "cookie",
    }
)

_MASK = "<redacted>"
_MAX_DEPTH = 20
# Records shown per list; the rest are summarized as a count.
_MAX_SEQUENCE_ITEMS = 5


def _is_sensitive(key: Any) -> bool:
    return str(key).lower() in _SENSITIVE_KEYS


def _clip(text: str, max_string: int) -> str:
    return text if len(text) <= max_string else f"{text[:max_string]}…<truncated>"


def redact_for_log(value: Any, *, max_string: int = 512) -> Any:
    """Return a log-safe copy of *value*.

    Parameters
    ----------
    value
        Request payload, decoded response body or header mapping.
    max_string : int
        Longer strings are cut to this many characters.
    """
    return _redact(value, max_string, 0)


def _redact(value: Any, max_string: int, depth: int) -> Any:
    if depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _clip(value, max_string)
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, Mapping):
        return {
            str(key): _MASK if _is_sensitive(key) else _redact(item, max_string, depth + 1)
            for key, item in value.items()
        }
    if isinstance(value, Sequence):
        shown = [_redact(item, max_string, depth + 1) for item in value[:_MAX_SEQUENCE_ITEMS]]
        hidden = len(value) - len(shown)
        if hidden > 0:
            shown.append(f"<+{hidden} more>")
        return shown
    return repr(value)
