"""Pull sync: tick scheduling and the fetch/reconcile/persist cycle."""

from torfleet.sync.orchestrator import SyncOrchestrator, SyncOutcome, SyncResult
from torfleet.sync.scheduler import IntervalTicker, Ticker

__all__ = [
    "IntervalTicker",
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncResult",
    "Ticker",
]
