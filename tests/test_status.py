from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from torfleet.ingestion.reconcile import derive_status
from torfleet.models.telemetry import TelemetrySample
from torfleet.models.vehicle import VehicleStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _sample(age: timedelta | None = timedelta(0), **fields: Any) -> TelemetrySample:
    record: dict[str, Any] = {"HWID": "860000000000001", **fields}
    if age is not None:
        record["DeviceDate"] = (NOW - age).isoformat()
    return TelemetrySample.model_validate(record)


def test_stale_sample_with_machine_off_is_offline() -> None:
    sample = _sample(timedelta(minutes=20), MachineStatus="Off")
    assert derive_status(sample, now=NOW) is VehicleStatus.OFFLINE


def test_fresh_sample_with_machine_on_is_online() -> None:
    assert derive_status(_sample(MachineStatus="On"), now=NOW) is VehicleStatus.ONLINE


def test_fresh_moving_sample_with_empty_status_is_running() -> None:
    assert derive_status(_sample(Speed=12, MachineStatus=""), now=NOW) is VehicleStatus.RUNNING


def test_missing_or_unparseable_timestamp_is_offline() -> None:
    assert derive_status(_sample(None, MachineStatus="On"), now=NOW) is VehicleStatus.OFFLINE
    garbage = TelemetrySample.model_validate({"HWID": "1", "DeviceDate": "yesterday-ish", "Speed": 40})
    assert derive_status(garbage, now=NOW) is VehicleStatus.OFFLINE


def test_older_than_a_day_is_non_communicating() -> None:
    sample = _sample(timedelta(minutes=1441), MachineStatus="On", Speed=50)
    assert derive_status(sample, now=NOW) is VehicleStatus.NON_COMMUNICATING


def test_thresholds_are_strict() -> None:
    # Exactly 15 minutes old is still fresh.
    assert derive_status(_sample(timedelta(minutes=15)), now=NOW) is VehicleStatus.OFF
    assert derive_status(_sample(timedelta(minutes=15, seconds=1)), now=NOW) is VehicleStatus.OFFLINE
    assert derive_status(_sample(timedelta(minutes=1440)), now=NOW) is VehicleStatus.OFFLINE


def test_future_timestamp_counts_as_fresh() -> None:
    sample = _sample(-timedelta(minutes=5), MachineStatus="On")
    assert derive_status(sample, now=NOW) is VehicleStatus.ONLINE


@pytest.mark.parametrize(
    ("fields", "expected"),
    [
        ({"MachineStatus": "On", "IsCharging": "1", "Speed": 30}, VehicleStatus.ONLINE),
        ({"IsCharging": "1", "Speed": 30}, VehicleStatus.CHARGING),
        ({"ChargingCurrent": "4.2", "Speed": 30}, VehicleStatus.CHARGING),
        ({"Speed": "30", "KeyOn": "1"}, VehicleStatus.RUNNING),
        ({"Speed": 0, "KeyOn": 1}, VehicleStatus.IDLE),
        ({"Speed": 0, "KeyOn": "0"}, VehicleStatus.OFF),
        ({"MachineStatus": "on"}, VehicleStatus.OFF),
    ],
)
def test_priority_order(fields: dict[str, Any], expected: VehicleStatus) -> None:
    assert derive_status(_sample(**fields), now=NOW) is expected


def test_custom_thresholds() -> None:
    sample = _sample(timedelta(minutes=6), MachineStatus="On")
    status = derive_status(
        sample,
        now=NOW,
        offline_after=timedelta(minutes=5),
        non_communicating_after=timedelta(minutes=60),
    )
    assert status is VehicleStatus.OFFLINE
