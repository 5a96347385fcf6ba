"""Shared bearer-token lifecycle for authenticated API calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from torfleet.exceptions import TorAuthenticationError, TorError
from torfleet.models.token import AuthToken

_logger = logging.getLogger(__name__)


class TokenManager:
    """Owns the single bearer token used by every provider call.

    The token is acquired lazily through *login*, reused until a caller
    reports it rejected via :meth:`invalidate`, and never persisted.
    Concurrent :meth:`acquire` calls share one login.

    Parameters
    ----------
    login : callable
        Coroutine function performing ``/Auth/login`` and returning the token.
    """

    def __init__(self, login: Callable[[], Awaitable[AuthToken]]) -> None:
        self._login = login
        self._token: AuthToken | None = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> AuthToken | None:
        """The cached token, if any."""
        return self._token

    async def acquire(self) -> AuthToken:
        """Return the cached token, logging in first if there is none.

        Raises
        ------
        TorAuthenticationError
            Login failed for any reason (network, non-2xx, malformed body).
            The cached token is cleared.
        """
        token = self._token
        if token is not None:
            return token

        async with self._lock:
            # Another task may have logged in while we waited.
            if self._token is not None:
                return self._token
            try:
                token = await self._login()
            except TorAuthenticationError:
                self._token = None
                raise
            except TorError as exc:
                self._token = None
                raise TorAuthenticationError(f"Token acquisition failed: {exc}") from exc
            self._token = token
            _logger.info("Acquired provider token")
            return token

    def invalidate(self, token: AuthToken | None = None) -> None:
        """Drop the cached token so the next :meth:`acquire` logs in again.

        When *token* is given, only that token is dropped; a newer token
        acquired concurrently by another task is kept.
        """
        if token is not None and self._token is not token:
            return
        if self._token is not None:
            _logger.info("Provider token invalidated")
        self._token = None
