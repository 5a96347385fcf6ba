"""HTTP surface of the fleet service (aiohttp.web).

Routes
------
``POST /telemetry/bulk`` (alias ``/api/telemetry/bulk``)
    Push ingestion of vehicle records.
``GET /api/vehicles``
    Current state of every vehicle, without history.
``PUT /api/vehicles/{id}``
    Manual shallow patch of one vehicle.
``GET /api/telemetry/{id}``
    One vehicle plus its latest retained sample.
``GET /api/telemetry/{id}/history``
    Retained samples, newest first, filtered by ``from``/``to``/``limit``.
``GET /api/sync/status``
    Whether a sync cycle is running and how the last one ended.
``GET /health``
    Liveness probe.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from aiohttp import web

from torfleet._constants import HISTORY_QUERY_DEFAULT, HISTORY_QUERY_MAX
from torfleet.client import TorClient
from torfleet.config import TorConfig
from torfleet.exceptions import TorPersistError, TorValidationError
from torfleet.ingestion.apply import apply_events
from torfleet.ingestion.normalize import parse_device_timestamp, safe_str
from torfleet.ingestion.push import build_manual_event, build_push_events
from torfleet.state.store import FleetStore
from torfleet.sync.orchestrator import SyncOrchestrator
from torfleet.sync.scheduler import IntervalTicker

_logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Allow the browser dashboard to call the API from another origin."""
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
    else:
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            # Router 404/405 replies are raised, not returned.
            exc.headers.update(_CORS_HEADERS)
            raise
    response.headers.update(_CORS_HEADERS)
    return response


class FleetServer:
    """Wires the store, the push/read handlers and the background sync.

    Parameters
    ----------
    config : TorConfig
        Service configuration.
    store : FleetStore or None
        Store to serve.  Built from ``config.db_file`` when omitted.
    orchestrator : SyncOrchestrator or None
        Sync to drive.  When omitted and credentials are configured, a
        :class:`TorClient`-backed orchestrator is created at startup.
    start_sync : bool
        Run the periodic sync loop while the app is up.
    """

    def __init__(
        self,
        config: TorConfig,
        *,
        store: FleetStore | None = None,
        orchestrator: SyncOrchestrator | None = None,
        start_sync: bool = True,
    ) -> None:
        self._config = config
        if store is None:
            store = FleetStore(config.db_file, history_limit=config.history_limit)
        self._store = store
        self._orchestrator = orchestrator
        self._start_sync = start_sync
        self._device_tz = config.device_tz

    @property
    def store(self) -> FleetStore:
        return self._store

    @property
    def orchestrator(self) -> SyncOrchestrator | None:
        return self._orchestrator

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[cors_middleware])
        app.cleanup_ctx.append(self._store_ctx)
        app.cleanup_ctx.append(self._sync_ctx)

        app.router.add_get("/health", self.handle_health)
        app.router.add_post("/telemetry/bulk", self.handle_push)
        app.router.add_post("/api/telemetry/bulk", self.handle_push)
        app.router.add_get("/api/vehicles", self.handle_list_vehicles)
        app.router.add_put("/api/vehicles/{vehicle_id}", self.handle_update_vehicle)
        app.router.add_get("/api/telemetry/{vehicle_id}", self.handle_vehicle_telemetry)
        app.router.add_get("/api/telemetry/{vehicle_id}/history", self.handle_history)
        app.router.add_get("/api/sync/status", self.handle_sync_status)
        return app

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _store_ctx(self, app: web.Application) -> AsyncIterator[None]:
        self._store.load()
        yield
        try:
            await self._store.async_save()
        except TorPersistError as exc:
            _logger.error("Final save failed: %s", exc)

    async def _sync_ctx(self, app: web.Application) -> AsyncIterator[None]:
        async with contextlib.AsyncExitStack() as stack:
            if self._orchestrator is None and self._config.sync_enabled:
                client = await stack.enter_async_context(TorClient(self._config))
                self._orchestrator = SyncOrchestrator(client, self._store, self._config)

            if self._orchestrator is None or not self._start_sync:
                if not self._config.sync_enabled:
                    _logger.info("TOR credentials not configured; running push-only")
                yield
                return

            ticker = IntervalTicker(self._config.sync_interval)
            task = asyncio.create_task(self._orchestrator.run_forever(ticker))
            _logger.info("Sync loop started (every %.0fs)", self._config.sync_interval)
            yield
            ticker.stop()
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            _logger.info("Sync loop stopped")

    async def _persist(self) -> web.Response | None:
        try:
            await self._store.async_save()
        except TorPersistError as exc:
            _logger.error("Persisting fleet store failed: %s", exc)
            return _error(500, "Failed to persist fleet store")
        return None

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "vehicles": len(self._store)})

    async def handle_push(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except ValueError:
            return _error(400, "Body must be valid JSON")
        try:
            events, skipped = build_push_events(
                body,
                received_at=datetime.now(UTC),
                device_tz=self._device_tz,
            )
        except TorValidationError as exc:
            return _error(400, str(exc))

        stats = apply_events(self._store.apply, events)
        failure = await self._persist()
        if failure is not None:
            return failure

        _logger.debug(
            "Push batch: %d applied, %d skipped, %d failed, %d new history",
            stats.applied,
            skipped,
            stats.failed,
            stats.history_added,
        )
        return web.json_response({"success": True, "vehicles": len(self._store)})

    async def handle_list_vehicles(self, request: web.Request) -> web.Response:
        return web.json_response(self._store.list_vehicles())

    async def handle_update_vehicle(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except ValueError:
            return _error(400, "Body must be valid JSON")
        try:
            event = build_manual_event(request.match_info["vehicle_id"], body)
        except TorValidationError as exc:
            return _error(400, str(exc))

        self._store.apply(event)
        failure = await self._persist()
        if failure is not None:
            return failure
        return web.json_response({"success": True})

    async def handle_vehicle_telemetry(self, request: web.Request) -> web.Response:
        vehicle_id = request.match_info["vehicle_id"]
        vehicle = self._store.get_vehicle(vehicle_id)
        if vehicle is None:
            return _error(404, "Vehicle not found")
        latest = self._store.latest_telemetry(vehicle_id)
        return web.json_response(
            {
                "vehicle": vehicle,
                "latest": latest.to_json_dict() if latest is not None else None,
            }
        )

    async def handle_history(self, request: web.Request) -> web.Response:
        vehicle_id = request.match_info["vehicle_id"]
        if vehicle_id not in self._store:
            return _error(404, "Vehicle not found")
        try:
            start, end, limit = _parse_history_query(request.query)
        except TorValidationError as exc:
            return _error(400, str(exc))

        entries = self._store.query_history(vehicle_id, start=start, end=end, limit=limit)
        return web.json_response(
            {
                "vehicleId": vehicle_id,
                "count": len(entries),
                "history": [entry.to_json_dict() for entry in entries],
            }
        )

    async def handle_sync_status(self, request: web.Request) -> web.Response:
        orchestrator = self._orchestrator
        last = orchestrator.last_result if orchestrator is not None else None
        return web.json_response(
            {
                "enabled": orchestrator is not None,
                "running": orchestrator.is_running if orchestrator is not None else False,
                "lastResult": last.to_json_dict() if last is not None else None,
            }
        )


def _parse_history_query(query: Any) -> tuple[datetime | None, datetime | None, int]:
    """Parse ``from``/``to``/``limit``.

    Raises
    ------
    TorValidationError
        A bound is unparseable, ``from`` is after ``to``, or ``limit`` is not
        a positive integer.
    """
    bounds: dict[str, datetime | None] = {}
    for name in ("from", "to"):
        text = safe_str(query.get(name))
        if text is None:
            bounds[name] = None
            continue
        parsed = parse_device_timestamp(text)
        if parsed is None:
            raise TorValidationError(f"Invalid '{name}' timestamp: {text!r}")
        bounds[name] = parsed

    start, end = bounds["from"], bounds["to"]
    if start is not None and end is not None and start > end:
        raise TorValidationError("'from' must not be after 'to'")

    limit_text = safe_str(query.get("limit"))
    if limit_text is None:
        limit = HISTORY_QUERY_DEFAULT
    else:
        try:
            limit = int(limit_text)
        except ValueError as exc:
            raise TorValidationError(f"Invalid 'limit': {limit_text!r}") from exc
        if limit <= 0:
            raise TorValidationError("'limit' must be positive")
    return start, end, min(limit, HISTORY_QUERY_MAX)


def create_app(
    config: TorConfig,
    *,
    store: FleetStore | None = None,
    orchestrator: SyncOrchestrator | None = None,
    start_sync: bool = True,
) -> web.Application:
    """Build the aiohttp application for *config*."""
    server = FleetServer(config, store=store, orchestrator=orchestrator, start_sync=start_sync)
    return server.create_app()
