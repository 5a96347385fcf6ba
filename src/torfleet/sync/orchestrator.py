"""Sync cycle orchestration.

One cycle fetches the metadata snapshot, then the telemetry, reconciles
them into ingestion events, applies those to the store and persists it.
A run-once guard keeps cycles from overlapping; nothing raised inside a
cycle escapes to the scheduler.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Protocol

from torfleet.config import TorConfig
from torfleet.exceptions import TorAuthenticationError, TorPersistError
from torfleet.ingestion.apply import apply_events
from torfleet.ingestion.reconcile import build_meta_lookup, reconcile
from torfleet.models._base import FleetModel
from torfleet.models.meta import VehicleMeta
from torfleet.models.telemetry import TelemetrySample
from torfleet.state.store import FleetStore
from torfleet.sync.scheduler import Ticker

_logger = logging.getLogger(__name__)


class FleetSource(Protocol):
    """Remote side of a sync cycle; :class:`torfleet.client.TorClient` in production."""

    async def fetch_vehicle_meta(self) -> list[VehicleMeta]: ...

    async def fetch_telemetry(self) -> list[TelemetrySample]: ...


class SyncOutcome(StrEnum):
    COMPLETED = "completed"
    SKIPPED_RUNNING = "skipped_running"
    SKIPPED_AUTH = "skipped_auth"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class SyncResult(FleetModel):
    """Summary of one :meth:`SyncOrchestrator.run_once` call."""

    outcome: SyncOutcome
    started_at: datetime
    finished_at: datetime | None = None
    meta_count: int = 0
    telemetry_count: int = 0
    applied: int = 0
    history_added: int = 0
    failed: int = 0
    persisted: bool = False
    error: str | None = None


class SyncOrchestrator:
    """Runs sync cycles against a :class:`FleetStore`.

    Parameters
    ----------
    source : FleetSource
        Provides metadata and telemetry for the fleet.
    store : FleetStore
        Destination of the reconciled events.
    config : TorConfig
        Supplies status thresholds, the cycle cap and the device timezone.
    clock : callable
        Returns the current aware time; injectable for tests.
    """

    def __init__(
        self,
        source: FleetSource,
        store: FleetStore,
        config: TorConfig,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._source = source
        self._store = store
        self._config = config
        self._clock = clock or (lambda: datetime.now(UTC))
        self._device_tz = config.device_tz
        self._running = False
        self._last_result: SyncResult | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_result(self) -> SyncResult | None:
        """Result of the last cycle that actually ran (skips are not recorded)."""
        return self._last_result

    async def run_once(self) -> SyncResult:
        """Run one cycle unless another is in progress."""
        if self._running:
            _logger.info("Sync cycle already in progress; skipping")
            return SyncResult(outcome=SyncOutcome.SKIPPED_RUNNING, started_at=self._clock())

        self._running = True
        started_at = self._clock()
        try:
            result = await self._run_capped(started_at)
        except TimeoutError:
            _logger.warning("Sync cycle exceeded %.0fs; abandoned", self._config.max_cycle_seconds)
            result = SyncResult(
                outcome=SyncOutcome.TIMED_OUT,
                started_at=started_at,
                finished_at=self._clock(),
                error=f"cycle exceeded {self._config.max_cycle_seconds}s",
            )
        except TorAuthenticationError as exc:
            _logger.warning("Sync cycle skipped, authentication failed: %s", exc)
            result = SyncResult(
                outcome=SyncOutcome.SKIPPED_AUTH,
                started_at=started_at,
                finished_at=self._clock(),
                error=str(exc),
            )
        except Exception as exc:
            _logger.exception("Sync cycle failed")
            result = SyncResult(
                outcome=SyncOutcome.FAILED,
                started_at=started_at,
                finished_at=self._clock(),
                error=f"{type(exc).__name__}: {exc}",
            )
        finally:
            self._running = False

        self._last_result = result
        return result

    async def _run_capped(self, started_at: datetime) -> SyncResult:
        if self._config.max_cycle_seconds > 0:
            return await asyncio.wait_for(self._cycle(started_at), self._config.max_cycle_seconds)
        return await self._cycle(started_at)

    async def _cycle(self, started_at: datetime) -> SyncResult:
        metas = await self._source.fetch_vehicle_meta()
        samples = await self._source.fetch_telemetry()

        now = self._clock()
        events = reconcile(
            build_meta_lookup(metas),
            samples,
            now=now,
            offline_after=timedelta(minutes=self._config.offline_after_minutes),
            non_communicating_after=timedelta(minutes=self._config.non_communicating_after_minutes),
            device_tz=self._device_tz,
        )
        stats = apply_events(self._store.apply, events)

        persisted = True
        error = None
        try:
            await self._store.async_save()
        except TorPersistError as exc:
            _logger.error("Sync cycle applied %d updates but could not persist: %s", stats.applied, exc)
            persisted = False
            error = str(exc)

        _logger.info(
            "Sync cycle done: %d meta, %d telemetry, %d applied, %d new history",
            len(metas),
            len(samples),
            stats.applied,
            stats.history_added,
        )
        return SyncResult(
            outcome=SyncOutcome.COMPLETED,
            started_at=started_at,
            finished_at=self._clock(),
            meta_count=len(metas),
            telemetry_count=len(samples),
            applied=stats.applied,
            history_added=stats.history_added,
            failed=stats.failed,
            persisted=persisted,
            error=error,
        )

    async def run_forever(self, ticker: Ticker) -> None:
        """Start a cycle on every tick until *ticker* is exhausted.

        Each tick spawns its own task, so a slow cycle makes later ticks
        hit the run-once guard instead of queueing behind it.  In-flight
        cycles are awaited before returning and cancelled if this coroutine
        is cancelled.
        """
        in_flight: set[asyncio.Task[SyncResult]] = set()
        try:
            async for _ in ticker:
                task = asyncio.create_task(self.run_once())
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)
        except asyncio.CancelledError:
            for task in in_flight:
                task.cancel()
            raise
        finally:
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)
