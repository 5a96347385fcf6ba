"""Normalized ingestion events.

All ingestion paths (pull sync, push endpoint, manual edits) convert their
inputs into these events. Only the state/store layer is allowed to merge them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from torfleet.models.vehicle import HistoryEntry


class IngestionSource(StrEnum):
    SYNC = "sync"
    PUSH = "push"
    MANUAL = "manual"


class IngestionEvent(BaseModel):
    """A normalized update to apply to the fleet store."""

    model_config = ConfigDict(frozen=True)

    vehicle_id: str = Field(..., description="Hardware identifier")
    source: IngestionSource
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict, description="Shallow patch (camelCase keys)")
    history: HistoryEntry | None = Field(default=None, description="Sample to retain, if any")

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def _normalize_vehicle_id(cls, value: Any) -> str:
        if value is None:
            raise ValueError("vehicle_id must be non-empty")
        vehicle_id = str(value).strip()
        if not vehicle_id:
            raise ValueError("vehicle_id must be non-empty")
        return vehicle_id

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
