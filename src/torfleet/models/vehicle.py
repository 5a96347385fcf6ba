"""Reconciled vehicle state and history models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator

from torfleet.models._base import FleetModel


class VehicleStatus(StrEnum):
    """Normalized operational status shown on the dashboard."""

    OFFLINE = "Offline"
    NON_COMMUNICATING = "Non-Communicating"
    ONLINE = "Online"
    CHARGING = "Charging"
    RUNNING = "Running"
    IDLE = "Idle"
    OFF = "Off"


class Location(FleetModel):
    lat: float | None = None
    lng: float | None = None


class Metrics(FleetModel):
    speed: float | None = None
    battery: float | None = None
    """State of charge in percent."""
    odometer: float | None = None
    signal: float | None = None
    device_temp: float | None = None
    controller_temp: float | None = None


class VehicleState(FleetModel):
    """Reconciled record for one vehicle, as produced by a sync cycle.

    Serialized with camelCase keys (``vehicleId``, ``registrationNumber``...)
    and merged shallowly into the stored record, so a key absent here keeps
    whatever a previous sync or push stored.
    """

    vehicle_id: str
    """Hardware identifier."""
    device_code: str
    registration_number: str
    chassis_number: str
    status: VehicleStatus
    location: Location | None = None
    metrics: Metrics = Field(default_factory=Metrics)
    is_charging: bool | None = None
    immobilized: bool | None = None
    key_on: str | None = None
    machine_status: str | None = None
    device_date: datetime | None = None
    raw_tor: dict[str, Any] = Field(default_factory=dict)
    """Raw provider sample the state was derived from."""


class HistoryEntry(FleetModel):
    """One retained raw sample for a vehicle."""

    timestamp: str
    """Provider timestamp string; unique per vehicle."""
    recorded_at: datetime | None = None
    """Parsed ``timestamp`` used for ordering and range queries."""
    raw_tor: dict[str, Any] = Field(default_factory=dict)
    metrics: dict[str, Any] = Field(default_factory=dict)

    @field_validator("recorded_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
