"""Push batch and manual edit normalization.

Pushed records are already in the dashboard's own shape (``vehicleId``,
``rawTor``, ``metrics``...), so they are merged as-is rather than
re-reconciled.  The only extraction done here is the vehicle key and the
history timestamp.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime, tzinfo
from typing import Any

from torfleet.exceptions import TorValidationError
from torfleet.ingestion.normalize import first_present, history_timestamp, parse_device_timestamp, safe_str
from torfleet.models.vehicle import HistoryEntry
from torfleet.state.events import IngestionEvent, IngestionSource

_logger = logging.getLogger(__name__)

# Identifier field names accepted on pushed records, in lookup order.
PUSH_ID_KEYS: tuple[str, ...] = ("vehicleId", "id")


def parse_push_batch(body: Any) -> list[Any]:
    """Validate the top-level shape of a push body.

    Raises
    ------
    TorValidationError
        The body is not a JSON array.
    """
    if not isinstance(body, list):
        raise TorValidationError("Push body must be a JSON array of vehicle records")
    return body


def push_history_timestamp(record: Mapping[str, Any]) -> str | None:
    """Timestamp keying a pushed record's history entry, if any."""
    raw_tor = record.get("rawTor")
    return history_timestamp(raw_tor) or safe_str(record.get("timestamp"))


def build_push_event(
    record: Any,
    *,
    received_at: datetime,
    device_tz: tzinfo = UTC,
) -> IngestionEvent | None:
    """Event for one pushed record, or ``None`` when it has no usable key."""
    if not isinstance(record, Mapping):
        return None
    vehicle_id = safe_str(first_present(record, PUSH_ID_KEYS))
    if vehicle_id is None:
        return None

    patch = {key: value for key, value in record.items() if key != "id"}

    history = None
    timestamp = push_history_timestamp(record)
    if timestamp is not None:
        raw_tor = record.get("rawTor")
        metrics = record.get("metrics")
        history = HistoryEntry(
            timestamp=timestamp,
            recorded_at=parse_device_timestamp(timestamp, default_tz=device_tz),
            raw_tor=dict(raw_tor) if isinstance(raw_tor, Mapping) else {},
            metrics=dict(metrics) if isinstance(metrics, Mapping) else {},
        )

    return IngestionEvent(
        vehicle_id=vehicle_id,
        source=IngestionSource.PUSH,
        observed_at=received_at,
        data=patch,
        history=history,
    )


def build_push_events(
    body: Any,
    *,
    received_at: datetime | None = None,
    device_tz: tzinfo = UTC,
) -> tuple[list[IngestionEvent], int]:
    """Normalize a push body; returns ``(events, skipped)``."""
    records = parse_push_batch(body)
    received_at = received_at or datetime.now(UTC)
    events: list[IngestionEvent] = []
    skipped = 0
    for record in records:
        event = build_push_event(record, received_at=received_at, device_tz=device_tz)
        if event is None:
            skipped += 1
            continue
        events.append(event)
    if skipped:
        _logger.debug("Skipped %d pushed records without a vehicle id", skipped)
    return events, skipped


def build_manual_event(vehicle_id: str, body: Any, *, received_at: datetime | None = None) -> IngestionEvent:
    """Event for a manual edit of one vehicle's stored fields.

    Raises
    ------
    TorValidationError
        The body is not a JSON object or the vehicle id is blank.
    """
    if not isinstance(body, Mapping):
        raise TorValidationError("Vehicle update must be a JSON object")
    vehicle_id = safe_str(vehicle_id)
    if vehicle_id is None:
        raise TorValidationError("Vehicle id must be non-empty")
    return IngestionEvent(
        vehicle_id=vehicle_id,
        source=IngestionSource.MANUAL,
        observed_at=received_at or datetime.now(UTC),
        data=dict(body),
    )
