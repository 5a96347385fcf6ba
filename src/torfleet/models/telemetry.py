"""Telemetry sample model.

The provider reports the same reading under different field names depending
on the device family and API version; every variant is mapped here so the
reconciler only ever sees canonical fields.
"""

from __future__ import annotations

from datetime import UTC, datetime, tzinfo
from typing import Any

from pydantic import AliasChoices, Field, ValidationInfo, field_validator

from torfleet.ingestion.normalize import (
    history_timestamp,
    normalize_hwid,
    parse_device_timestamp,
    safe_bool,
    safe_float,
    safe_str,
)
from torfleet.models._base import TorBaseModel


class TelemetrySample(TorBaseModel):
    """One provider-reported reading for a hardware identifier.

    Numeric fields are ``None`` when absent or unparseable.  ``device_date``
    is ``None`` when the device timestamp is missing or unparseable, which
    the reconciler reports as ``Offline``.

    Validate with ``context={"device_tz": <tzinfo>}`` to interpret
    offset-less device timestamps in a zone other than UTC.
    """

    hwid: str = Field(validation_alias=AliasChoices("HWID", "hardwareId", "hwid"))
    device_date: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("DeviceDate", "deviceDate", "device_date"),
    )
    """Device-side timestamp of the reading (aware, UTC)."""
    latitude: float | None = Field(default=None, validation_alias=AliasChoices("Latitude", "latitude", "Lat", "lat"))
    longitude: float | None = Field(
        default=None,
        validation_alias=AliasChoices("Longitude", "longitude", "Lng", "lng", "Lon", "lon"),
    )
    speed: float | None = Field(default=None, validation_alias=AliasChoices("Speed", "speed"))
    soc: float | None = Field(default=None, validation_alias=AliasChoices("SOC", "Soc", "soc", "battery"))
    """State of charge in percent."""
    odometer: float | None = Field(default=None, validation_alias=AliasChoices("Odometer", "odometer", "ODO"))
    signal_strength: float | None = Field(
        default=None,
        validation_alias=AliasChoices("GSMSignal", "GsmSignal", "SignalStrength", "signalStrength", "signal_strength"),
    )
    is_charging: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("IsCharging", "isCharging", "Charging", "is_charging"),
    )
    charging_current: float | None = Field(
        default=None,
        validation_alias=AliasChoices("ChargingCurrent", "chargingCurrent", "charging_current"),
    )
    immobilized: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("Immobilize", "Immobilized", "immobilize", "immobilized"),
    )
    key_on: str | None = Field(
        default=None,
        validation_alias=AliasChoices("KeyOn", "keyOn", "Ignition", "ignition", "key_on"),
    )
    """Key-on signal as reported (``"1"`` = key on)."""
    device_temp: float | None = Field(
        default=None,
        validation_alias=AliasChoices("DeviceTemp", "deviceTemp", "device_temp"),
    )
    controller_temp: float | None = Field(
        default=None,
        validation_alias=AliasChoices("ControllerTemp", "controllerTemp", "controller_temp"),
    )
    machine_status: str | None = Field(
        default=None,
        validation_alias=AliasChoices("MachineStatus", "machineStatus", "machine_status"),
    )
    """Raw machine status string (``"On"``, ``"Off"``...)."""

    @property
    def history_timestamp(self) -> str | None:
        """Entry/device timestamp string keying this sample in history."""
        return history_timestamp(self.raw)

    @field_validator("hwid", mode="before")
    @classmethod
    def _coerce_hwid(cls, value: Any) -> str:
        hwid = normalize_hwid(value)
        if hwid is None:
            raise ValueError("hardware identifier must be non-empty")
        return hwid

    @field_validator("device_date", mode="before")
    @classmethod
    def _coerce_device_date(cls, value: Any, info: ValidationInfo) -> datetime | None:
        default_tz: tzinfo = UTC
        if isinstance(info.context, dict) and isinstance(info.context.get("device_tz"), tzinfo):
            default_tz = info.context["device_tz"]
        return parse_device_timestamp(value, default_tz=default_tz)

    @field_validator(
        "latitude",
        "longitude",
        "speed",
        "soc",
        "odometer",
        "signal_strength",
        "charging_current",
        "device_temp",
        "controller_temp",
        mode="before",
    )
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("is_charging", "immobilized", mode="before")
    @classmethod
    def _coerce_flags(cls, value: Any) -> bool | None:
        return safe_bool(value)

    @field_validator("key_on", mode="before")
    @classmethod
    def _coerce_key_on(cls, value: Any) -> str | None:
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return safe_str(value)

    @field_validator("machine_status", mode="before")
    @classmethod
    def _coerce_machine_status(cls, value: Any) -> str | None:
        return safe_str(value)
