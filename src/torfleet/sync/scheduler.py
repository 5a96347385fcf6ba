"""Tick sources driving the sync loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Protocol

_logger = logging.getLogger(__name__)


class Ticker(Protocol):
    """Anything that can be iterated asynchronously, one item per tick.

    Iteration ending means the loop should stop.
    """

    def __aiter__(self) -> AsyncIterator[object]: ...


class IntervalTicker:
    """Ticks every *interval* seconds until :meth:`stop` is called.

    Parameters
    ----------
    interval : float
        Seconds between ticks.
    fire_immediately : bool
        Emit the first tick without waiting one interval.
    stop_event : asyncio.Event or None
        Shared cancellation token.  A fresh event is created when omitted.
    """

    def __init__(
        self,
        interval: float,
        *,
        fire_immediately: bool = True,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._interval = interval
        self._fire_immediately = fire_immediately
        self._stop_event = stop_event or asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        self._stop_event.set()

    async def __aiter__(self) -> AsyncIterator[int]:
        tick = 0
        if self._fire_immediately and not self.stopped:
            yield tick
        while not self.stopped:
            try:
                await asyncio.wait_for(self._stop_event.wait(), self._interval)
            except TimeoutError:
                tick += 1
                yield tick
        _logger.debug("Interval ticker stopped after %d ticks", tick)
