"""Data models for TOR IoT records and reconciled fleet state."""

from torfleet.models._base import FleetModel, TorBaseModel
from torfleet.models.meta import VehicleMeta
from torfleet.models.telemetry import TelemetrySample
from torfleet.models.token import AuthToken
from torfleet.models.vehicle import HistoryEntry, Location, Metrics, VehicleState, VehicleStatus

__all__ = [
    "AuthToken",
    "FleetModel",
    "HistoryEntry",
    "Location",
    "Metrics",
    "TelemetrySample",
    "TorBaseModel",
    "VehicleMeta",
    "VehicleState",
    "VehicleStatus",
]
