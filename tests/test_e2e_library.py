from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from torfleet._constants import META_ENDPOINT, TELEMETRY_ENDPOINT
from torfleet.client import TorClient
from torfleet.config import TorConfig
from torfleet.exceptions import TorAuthenticationError, TorSessionExpiredError, TorTransportError
from torfleet.state.store import FleetStore
from torfleet.sync.orchestrator import SyncOrchestrator, SyncOutcome

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@dataclass
class FakeTorProvider:
    """In-process stand-in for the TOR IoT API."""

    meta: list[dict[str, Any]] = field(default_factory=list)
    telemetry: list[dict[str, Any]] = field(default_factory=list)
    calls: dict[str, int] = field(default_factory=dict)
    login_should_fail: bool = False
    expire_once_endpoints: set[str] = field(default_factory=set)
    _expired_already: set[str] = field(default_factory=set)
    logins: int = 0
    page_requests: list[dict[str, Any]] = field(default_factory=list)

    @property
    def current_token(self) -> str:
        return f"tok-{self.logins}"

    def _record_call(self, endpoint: str) -> None:
        self.calls[endpoint] = self.calls.get(endpoint, 0) + 1

    async def handle_login(self, request: web.Request) -> web.Response:
        self._record_call("/Auth/login")
        body = await request.json()
        if self.login_should_fail or body != {"username": "ops", "password": "secret"}:
            return web.json_response({"message": "invalid credentials"}, status=401)
        self.logins += 1
        return web.json_response({"data": {"token": self.current_token}})

    def _page_handler(self, endpoint: str, records: list[dict[str, Any]]):
        async def handler(request: web.Request) -> web.Response:
            self._record_call(endpoint)
            if request.headers.get("Authorization") != f"Bearer {self.current_token}":
                return web.json_response({"message": "unauthorized"}, status=401)
            if endpoint in self.expire_once_endpoints and endpoint not in self._expired_already:
                self._expired_already.add(endpoint)
                return web.json_response({"message": "token expired"}, status=401)

            payload = await request.json()
            self.page_requests.append({"endpoint": endpoint, **payload})
            page, size = payload["pageNumber"], payload["pageSize"]
            chunk = records[(page - 1) * size : page * size]
            return web.json_response({"result": {"data": chunk, "totalCount": len(records)}})

        return handler

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/Auth/login", self.handle_login)
        app.router.add_post(META_ENDPOINT, self._page_handler(META_ENDPOINT, self.meta))
        app.router.add_post(TELEMETRY_ENDPOINT, self._page_handler(TELEMETRY_ENDPOINT, self.telemetry))
        app.router.add_post("/broken", self.handle_broken)
        app.router.add_post("/not-json", self.handle_not_json)
        return app

    async def handle_broken(self, request: web.Request) -> web.Response:
        return web.Response(status=502, text="bad gateway")

    async def handle_not_json(self, request: web.Request) -> web.Response:
        return web.Response(status=200, text="<html>maintenance</html>")


def _fleet(n: int) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    meta = [{"HWID": f"86{i:04d}", "RegistrationNo": f"KA01-{i}", "ChassisNo": f"CH{i}"} for i in range(n)]
    device_date = (NOW - timedelta(minutes=1)).strftime("%Y-%m-%d %H:%M:%S")
    telemetry = [
        {"HWID": f"86{i:04d}", "DeviceDate": device_date, "ENTRYDATE": device_date, "Speed": str(i % 3), "SOC": 50}
        for i in range(n)
    ]
    return meta, telemetry


@pytest_asyncio.fixture
async def provider() -> AsyncIterator[tuple[FakeTorProvider, TestServer]]:
    meta, telemetry = _fleet(5)
    backend = FakeTorProvider(meta=meta, telemetry=telemetry)
    server = TestServer(backend.create_app())
    await server.start_server()
    try:
        yield backend, server
    finally:
        await server.close()


def _config(server: TestServer, **overrides: Any) -> TorConfig:
    values: dict[str, Any] = {
        "username": "ops",
        "password": "secret",
        "base_url": str(server.make_url("/")),
        "page_size": 2,
        "db_file": None,
        **overrides,
    }
    return TorConfig(**values)


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_fetch_paginates_over_http(provider: tuple[FakeTorProvider, TestServer]) -> None:
    backend, server = provider

    async with TorClient(_config(server)) as client:
        metas = await client.fetch_vehicle_meta()
        samples = await client.fetch_telemetry()

    assert [m.hwid for m in metas] == [f"86{i:04d}" for i in range(5)]
    assert metas[0].registration_number == "KA01-0"
    assert len(samples) == 5
    assert backend.logins == 1
    assert backend.calls[META_ENDPOINT] == 3
    assert [r["pageNumber"] for r in backend.page_requests if r["endpoint"] == META_ENDPOINT] == [1, 2, 3]


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_sync_cycle_end_to_end(provider: tuple[FakeTorProvider, TestServer]) -> None:
    backend, server = provider
    store = FleetStore()
    config = _config(server)

    async with TorClient(config) as client:
        result = await SyncOrchestrator(client, store, config, clock=lambda: NOW).run_once()

    assert result.outcome is SyncOutcome.COMPLETED
    assert result.applied == 5
    assert len(store) == 5
    vehicle = store.get_vehicle("860001")
    assert vehicle is not None
    assert vehicle["registrationNumber"] == "KA01-1"
    assert vehicle["status"] == "Running"
    assert store.get_vehicle("860000")["status"] == "Off"


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_expired_token_on_telemetry_skips_cycle(provider: tuple[FakeTorProvider, TestServer]) -> None:
    backend, server = provider
    backend.expire_once_endpoints.add(TELEMETRY_ENDPOINT)
    store = FleetStore()
    config = _config(server)

    async with TorClient(config) as client:
        orchestrator = SyncOrchestrator(client, store, config, clock=lambda: NOW)

        first = await orchestrator.run_once()
        assert first.outcome is SyncOutcome.SKIPPED_AUTH
        assert client.tokens.token is None
        assert len(store) == 0

        second = await orchestrator.run_once()

    assert second.outcome is SyncOutcome.COMPLETED
    assert second.telemetry_count == 5
    assert backend.logins == 2
    assert len(store) == 5


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_expired_token_on_metadata_keeps_stored_fields(provider: tuple[FakeTorProvider, TestServer]) -> None:
    backend, server = provider
    store = FleetStore()
    config = _config(server)

    async with TorClient(config) as client:
        orchestrator = SyncOrchestrator(client, store, config, clock=lambda: NOW)
        assert (await orchestrator.run_once()).outcome is SyncOutcome.COMPLETED
        telemetry_calls = backend.calls[TELEMETRY_ENDPOINT]

        backend.expire_once_endpoints.add(META_ENDPOINT)
        second = await orchestrator.run_once()

        assert second.outcome is SyncOutcome.SKIPPED_AUTH
        assert backend.logins == 1
        assert backend.calls[TELEMETRY_ENDPOINT] == telemetry_calls
        assert store.get_vehicle("860001")["registrationNumber"] == "KA01-1"
        assert client.tokens.token is None

        third = await orchestrator.run_once()

    assert third.outcome is SyncOutcome.COMPLETED
    assert backend.logins == 2
    vehicle = store.get_vehicle("860001")
    assert vehicle is not None
    assert vehicle["registrationNumber"] == "KA01-1"
    assert vehicle["chassisNumber"] == "CH1"


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_login_failure_skips_cycle(provider: tuple[FakeTorProvider, TestServer]) -> None:
    backend, server = provider
    backend.login_should_fail = True
    store = FleetStore()
    config = _config(server)

    async with TorClient(config) as client:
        result = await SyncOrchestrator(client, store, config).run_once()
        with pytest.raises(TorAuthenticationError):
            await client.ensure_token()

    assert result.outcome is SyncOutcome.SKIPPED_AUTH
    assert backend.calls.get(META_ENDPOINT, 0) == 0
    assert len(store) == 0


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_transport_error_mapping(provider: tuple[FakeTorProvider, TestServer]) -> None:
    _, server = provider

    async with TorClient(_config(server)) as client:
        transport = client._require_transport()

        with pytest.raises(TorTransportError) as broken:
            await transport.post_json("/broken", {})
        assert broken.value.status_code == 502

        with pytest.raises(TorTransportError):
            await transport.post_json("/not-json", {})

        with pytest.raises(TorSessionExpiredError):
            await transport.post_json(META_ENDPOINT, {"pageNumber": 1, "pageSize": 2}, token="stale")


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_unreachable_provider_is_a_transport_error() -> None:
    config = TorConfig(username="ops", password="secret", base_url="http://127.0.0.1:9", db_file=None)

    async with TorClient(config) as client:
        with pytest.raises(TorAuthenticationError) as exc_info:
            await client.ensure_token()

    assert isinstance(exc_info.value.__cause__, TorTransportError)
