"""High-level async client for the TOR IoT fleet API."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, TypeVar

import aiohttp
from pydantic import BaseModel, ValidationError

from torfleet._api import login as _login_api
from torfleet._api.pagination import fetch_all_pages
from torfleet._transport import HttpTransport, Transport
from torfleet.config import TorConfig
from torfleet.exceptions import TorError
from torfleet.models.meta import VehicleMeta
from torfleet.models.telemetry import TelemetrySample
from torfleet.models.token import AuthToken
from torfleet.session import TokenManager

_logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class TorClient:
    """Async client for the TOR IoT API.

    Usage::

        async with TorClient(config) as client:
            metas = await client.fetch_vehicle_meta()
            samples = await client.fetch_telemetry()

    A custom *transport* (any object with ``post_json``) replaces the
    aiohttp transport; tests use this to talk to an in-process fake.
    """

    def __init__(
        self,
        config: TorConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        tokens: TokenManager | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = transport
        self._external_transport = transport is not None
        self._tokens = tokens if tokens is not None else TokenManager(self._login)
        self._device_tz = config.device_tz

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TorClient:
        if self._external_transport:
            return self
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = HttpTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._external_transport:
            self._transport = None

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    @property
    def config(self) -> TorConfig:
        return self._config

    @property
    def tokens(self) -> TokenManager:
        return self._tokens

    async def _login(self) -> AuthToken:
        return await _login_api.login(self._config, self._require_transport())

    async def ensure_token(self) -> AuthToken:
        """Return the shared token, logging in if none is cached."""
        return await self._tokens.acquire()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise TorError("Client not initialized. Use 'async with TorClient(...) as client:'")
        return self._transport

    def _validate_all(self, model: type[M], records: list[dict[str, Any]], kind: str) -> list[M]:
        parsed: list[M] = []
        context = {"device_tz": self._device_tz}
        for record in records:
            try:
                parsed.append(model.model_validate(record, context=context))
            except ValidationError as exc:
                _logger.debug("Skipping invalid %s record: %s", kind, exc.errors(include_input=False))
        skipped = len(records) - len(parsed)
        if skipped:
            _logger.warning("Skipped %d of %d %s records", skipped, len(records), kind)
        return parsed

    # ------------------------------------------------------------------
    # Read endpoints
    # ------------------------------------------------------------------

    async def fetch_all_pages(
        self,
        endpoint: str,
        base_payload: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch every page of *endpoint* (see :func:`torfleet._api.pagination.fetch_all_pages`)."""
        return await fetch_all_pages(
            endpoint=endpoint,
            base_payload=base_payload or {},
            transport=self._require_transport(),
            tokens=self._tokens,
            page_size=self._config.page_size,
            timeout=self._config.request_timeout,
        )

    async def fetch_vehicle_meta(self) -> list[VehicleMeta]:
        """Fetch and normalize vehicle metadata for the whole fleet."""
        records = await self.fetch_all_pages(self._config.meta_endpoint, self._config.meta_filter)
        return self._validate_all(VehicleMeta, records, "metadata")

    async def fetch_telemetry(self) -> list[TelemetrySample]:
        """Fetch and normalize the latest telemetry for the whole fleet."""
        records = await self.fetch_all_pages(self._config.telemetry_endpoint, self._config.telemetry_filter)
        return self._validate_all(TelemetrySample, records, "telemetry")
