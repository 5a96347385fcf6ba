"""torfleet - TOR IoT fleet sync and telemetry ingestion service."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("torfleet")
except PackageNotFoundError:
    __version__ = "0+local"
from torfleet.client import TorClient
from torfleet.config import TorConfig
from torfleet.exceptions import (
    TorApiError,
    TorAuthenticationError,
    TorConfigError,
    TorError,
    TorPersistError,
    TorSessionExpiredError,
    TorTransportError,
    TorValidationError,
)
from torfleet.models import (
    AuthToken,
    HistoryEntry,
    Location,
    Metrics,
    TelemetrySample,
    VehicleMeta,
    VehicleState,
    VehicleStatus,
)
from torfleet.server import create_app
from torfleet.state.store import FleetStore
from torfleet.sync import IntervalTicker, SyncOrchestrator, SyncOutcome, SyncResult

__all__ = [
    "__version__",
    "AuthToken",
    "FleetStore",
    "HistoryEntry",
    "IntervalTicker",
    "Location",
    "Metrics",
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncResult",
    "TelemetrySample",
    "TorApiError",
    "TorAuthenticationError",
    "TorClient",
    "TorConfig",
    "TorConfigError",
    "TorError",
    "TorPersistError",
    "TorSessionExpiredError",
    "TorTransportError",
    "TorValidationError",
    "VehicleMeta",
    "VehicleState",
    "VehicleStatus",
    "create_app",
]
