"""HTTP transport for the TOR IoT JSON API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from torfleet._constants import AUTH_FAILURE_STATUSES, USER_AGENT
from torfleet._redact import redact_for_log
from torfleet.config import TorConfig
from torfleet.exceptions import TorSessionExpiredError, TorTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.
    """

    async def post_json(
        self,
        endpoint: str,
        payload: Mapping[str, Any],
        *,
        token: str | None = None,
        timeout: float | None = None,
    ) -> Any:
        ...


class HttpTransport:
    """aiohttp-backed JSON POST transport with bounded per-request timeouts."""

    def __init__(self, config: TorConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    async def post_json(
        self,
        endpoint: str,
        payload: Mapping[str, Any],
        *,
        token: str | None = None,
        timeout: float | None = None,
    ) -> Any:
        """POST *payload* as JSON and return the decoded JSON body.

        Raises
        ------
        TorSessionExpiredError
            The provider rejected the bearer token (401/403).
        TorTransportError
            Network failure, timeout, any other non-2xx status or a body
            that is not JSON.
        """
        headers: dict[str, str] = {
            "accept": "application/json",
            "content-type": "application/json; charset=UTF-8",
            "user-agent": USER_AGENT,
        }
        if token:
            headers["authorization"] = f"Bearer {token}"

        url = f"{self._config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        effective_timeout = timeout if timeout is not None else self._config.request_timeout
        body = json.dumps(dict(payload), separators=(",", ":"))

        _logger.debug("POST %s payload=%s", url, redact_for_log(payload))

        try:
            async with self._http.post(
                url,
                data=body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=effective_timeout),
            ) as resp:
                text = await resp.text()
                status = resp.status
        except TimeoutError as exc:
            raise TorTransportError(
                f"Request to {endpoint} timed out after {effective_timeout}s",
                endpoint=endpoint,
            ) from exc
        except aiohttp.ClientError as exc:
            raise TorTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        if token and status in AUTH_FAILURE_STATUSES:
            raise TorSessionExpiredError(
                f"HTTP {status} from {endpoint}: token rejected",
                status_code=status,
                endpoint=endpoint,
            )
        if not 200 <= status < 300:
            raise TorTransportError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )

        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise TorTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

        _logger.debug("Response %s status=%d body=%s", endpoint, status, redact_for_log(decoded))
        return decoded
