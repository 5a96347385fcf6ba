"""Meta/telemetry join and status derivation.

The reconciler turns one sync cycle's metadata snapshot and telemetry
samples into ingestion events. It never touches the store itself.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta, tzinfo

from torfleet._constants import NON_COMMUNICATING_AFTER_MINUTES, OFFLINE_AFTER_MINUTES, PLACEHOLDER
from torfleet.ingestion.normalize import parse_device_timestamp, prune_patch
from torfleet.models.meta import VehicleMeta
from torfleet.models.telemetry import TelemetrySample
from torfleet.models.vehicle import HistoryEntry, Location, Metrics, VehicleState, VehicleStatus
from torfleet.state.events import IngestionEvent, IngestionSource

_logger = logging.getLogger(__name__)

OFFLINE_AFTER = timedelta(minutes=OFFLINE_AFTER_MINUTES)
NON_COMMUNICATING_AFTER = timedelta(minutes=NON_COMMUNICATING_AFTER_MINUTES)


def derive_status(
    sample: TelemetrySample,
    *,
    now: datetime,
    offline_after: timedelta = OFFLINE_AFTER,
    non_communicating_after: timedelta = NON_COMMUNICATING_AFTER,
) -> VehicleStatus:
    """Derive the operational status of a sample.

    Rules are evaluated in order and the first match wins.  Freshness is
    checked before any reported flag: a stale sample says nothing about
    current motion or charging.

    1. ``Offline`` - no parseable device timestamp
    2. ``Non-Communicating`` - older than *non_communicating_after*
    3. ``Offline`` - older than *offline_after*
    4. ``Online`` - machine status ``"On"``
    5. ``Charging`` - charging flag set or positive charging current
    6. ``Running`` - positive speed
    7. ``Idle`` - key-on signal ``"1"``
    8. ``Off``
    """
    if sample.device_date is None:
        return VehicleStatus.OFFLINE

    elapsed = now - sample.device_date
    if elapsed > non_communicating_after:
        return VehicleStatus.NON_COMMUNICATING
    if elapsed > offline_after:
        return VehicleStatus.OFFLINE

    if sample.machine_status == "On":
        return VehicleStatus.ONLINE
    if sample.is_charging or (sample.charging_current is not None and sample.charging_current > 0):
        return VehicleStatus.CHARGING
    if sample.speed is not None and sample.speed > 0:
        return VehicleStatus.RUNNING
    if sample.key_on == "1":
        return VehicleStatus.IDLE
    return VehicleStatus.OFF


def build_meta_lookup(metas: Iterable[VehicleMeta]) -> dict[str, VehicleMeta]:
    """Index metadata by hardware identifier; later duplicates win."""
    lookup: dict[str, VehicleMeta] = {}
    for meta in metas:
        lookup[meta.hwid] = meta
    return lookup


def build_vehicle_state(
    sample: TelemetrySample,
    meta: VehicleMeta | None,
    *,
    status: VehicleStatus,
) -> VehicleState:
    """Join a sample with its metadata; missing metadata falls back to placeholders."""
    location = None
    if sample.latitude is not None or sample.longitude is not None:
        location = Location(lat=sample.latitude, lng=sample.longitude)

    return VehicleState(
        vehicle_id=sample.hwid,
        device_code=(meta.device_code if meta is not None else None) or sample.hwid,
        registration_number=(meta.registration_number if meta is not None else None) or PLACEHOLDER,
        chassis_number=(meta.chassis_number if meta is not None else None) or PLACEHOLDER,
        status=status,
        location=location,
        metrics=Metrics(
            speed=sample.speed,
            battery=sample.soc,
            odometer=sample.odometer,
            signal=sample.signal_strength,
            device_temp=sample.device_temp,
            controller_temp=sample.controller_temp,
        ),
        is_charging=sample.is_charging,
        immobilized=sample.immobilized,
        key_on=sample.key_on,
        machine_status=sample.machine_status,
        device_date=sample.device_date,
        raw_tor=sample.raw,
    )


def build_history_entry(
    sample: TelemetrySample,
    state: VehicleState,
    *,
    device_tz: tzinfo = UTC,
) -> HistoryEntry | None:
    """History entry for a sample, or ``None`` when it carries no timestamp."""
    timestamp = sample.history_timestamp
    if timestamp is None:
        return None
    return HistoryEntry(
        timestamp=timestamp,
        recorded_at=parse_device_timestamp(timestamp, default_tz=device_tz) or sample.device_date,
        raw_tor=sample.raw,
        metrics=prune_patch(state.metrics.to_json_dict()),
    )


def reconcile(
    lookup: dict[str, VehicleMeta],
    samples: Iterable[TelemetrySample],
    *,
    now: datetime,
    observed_at: datetime | None = None,
    offline_after: timedelta = OFFLINE_AFTER,
    non_communicating_after: timedelta = NON_COMMUNICATING_AFTER,
    device_tz: tzinfo = UTC,
) -> list[IngestionEvent]:
    """Turn one cycle's samples into sync events, joined against *lookup*."""
    events: list[IngestionEvent] = []
    unmatched = 0
    for sample in samples:
        meta = lookup.get(sample.hwid)
        if meta is None:
            unmatched += 1
        status = derive_status(
            sample,
            now=now,
            offline_after=offline_after,
            non_communicating_after=non_communicating_after,
        )
        state = build_vehicle_state(sample, meta, status=status)
        events.append(
            IngestionEvent(
                vehicle_id=sample.hwid,
                source=IngestionSource.SYNC,
                observed_at=observed_at or now,
                data=prune_patch(state.to_json_dict()),
                history=build_history_entry(sample, state, device_tz=device_tz),
            )
        )
    if unmatched:
        _logger.info("%d telemetry samples had no matching metadata", unmatched)
    return events
