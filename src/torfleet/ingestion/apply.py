"""Ingestion application helpers.

Sync cycles and push batches both end the same way: a list of
:class:`torfleet.state.events.IngestionEvent` applied one at a time, where a
failing record is logged and counted but never aborts the rest of the batch.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from torfleet.state.events import IngestionEvent

_logger = logging.getLogger(__name__)


@dataclass
class ApplyStats:
    """Outcome of applying a batch of events."""

    applied: int = 0
    history_added: int = 0
    failed: int = 0


def apply_events(
    store_apply: Callable[[IngestionEvent], bool],
    events: Iterable[IngestionEvent],
) -> ApplyStats:
    """Apply *events* in order through *store_apply*.

    Parameters
    ----------
    store_apply
        Usually :meth:`torfleet.state.store.FleetStore.apply`; returns
        whether a history entry was added.
    events
        Events to apply.
    """
    stats = ApplyStats()
    for event in events:
        try:
            added = store_apply(event)
        except Exception:
            stats.failed += 1
            _logger.exception("Failed to apply %s event for vehicle %s", event.source, event.vehicle_id)
            continue
        stats.applied += 1
        if added:
            stats.history_added += 1
    return stats
