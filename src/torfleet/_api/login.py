"""Login endpoint.

Endpoint:
  - /Auth/login
"""

from __future__ import annotations

import logging
from typing import Any

from torfleet._constants import LOGIN_ENDPOINT
from torfleet._redact import redact_for_log
from torfleet._transport import Transport
from torfleet.config import TorConfig
from torfleet.exceptions import TorAuthenticationError
from torfleet.models.token import AuthToken

_logger = logging.getLogger(__name__)

# Containers the provider may nest the token under, in lookup order.
_TOKEN_CONTAINERS: tuple[str, ...] = ("data", "result")


def build_login_request(config: TorConfig) -> dict[str, Any]:
    """Build the body for the login endpoint."""
    return {"username": config.username, "password": config.password}


def parse_login_response(response: Any) -> AuthToken:
    """Extract the bearer token from a login response.

    The token is read from ``token``, ``data.token`` or ``result.token``.

    Raises
    ------
    TorAuthenticationError
        If the response carries no usable token.
    """
    if not isinstance(response, dict):
        raise TorAuthenticationError("Login response is not a JSON object", endpoint=LOGIN_ENDPOINT)

    candidates: list[Any] = [response.get("token")]
    for key in _TOKEN_CONTAINERS:
        nested = response.get(key)
        if isinstance(nested, dict):
            candidates.append(nested.get("token"))

    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return AuthToken(value=candidate)

    _logger.debug("Login response without token: %s", redact_for_log(response))
    raise TorAuthenticationError("Login response missing token", endpoint=LOGIN_ENDPOINT)


async def login(config: TorConfig, transport: Transport) -> AuthToken:
    """Authenticate and return a fresh bearer token."""
    if not config.sync_enabled:
        raise TorAuthenticationError("Provider credentials are not configured", endpoint=LOGIN_ENDPOINT)
    response = await transport.post_json(
        LOGIN_ENDPOINT,
        build_login_request(config),
        timeout=config.login_timeout,
    )
    return parse_login_response(response)
