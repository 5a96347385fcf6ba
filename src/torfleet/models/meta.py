"""Vehicle metadata model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from torfleet.ingestion.normalize import normalize_hwid, safe_str
from torfleet.models._base import TorBaseModel


class VehicleMeta(TorBaseModel):
    """Display metadata for one device, from the provider metadata endpoint."""

    hwid: str = Field(validation_alias=AliasChoices("HWID", "hardwareId", "hwid"))
    """Hardware identifier (join key)."""
    device_code: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DeviceCode", "deviceCode", "DeviceNo", "deviceNo", "device_code"),
    )
    """Display device code."""
    registration_number: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RegistrationNo",
            "registrationNo",
            "RegistrationNumber",
            "registrationNumber",
            "VehicleNo",
            "registration_number",
        ),
    )
    """Registration (licence plate) number."""
    chassis_number: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ChassisNo", "chassisNo", "ChassisNumber", "chassisNumber", "chassis_number"),
    )
    """Chassis number."""

    @field_validator("hwid", mode="before")
    @classmethod
    def _coerce_hwid(cls, value: Any) -> str:
        hwid = normalize_hwid(value)
        if hwid is None:
            raise ValueError("hardware identifier must be non-empty")
        return hwid

    @field_validator("device_code", "registration_number", "chassis_number", mode="before")
    @classmethod
    def _coerce_strings(cls, value: Any) -> str | None:
        return safe_str(value)
