"""Custom exception hierarchy for torfleet."""

from __future__ import annotations


class TorError(Exception):
    """Base exception for all torfleet errors."""


class TorConfigError(TorError):
    """Invalid or missing configuration."""


class TorTransportError(TorError):
    """HTTP-level failure (network, timeout, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class TorApiError(TorError):
    """Provider answered, but the payload is not what the endpoint promises."""

    def __init__(self, message: str, *, endpoint: str = "") -> None:
        self.endpoint = endpoint
        super().__init__(message)


class TorAuthenticationError(TorApiError):
    """Token acquisition failed."""


class TorSessionExpiredError(TorAuthenticationError):
    """Bearer token rejected by the provider (HTTP 401/403).

    Raised by the transport for any post-login call.  Pagination invalidates
    the shared token and re-raises it, so the sync cycle is skipped and the
    next one logs in again.
    """

    def __init__(self, message: str, *, status_code: int | None = None, endpoint: str = "") -> None:
        self.status_code = status_code
        super().__init__(message, endpoint=endpoint)


class TorValidationError(TorError):
    """Malformed push payload."""


class TorPersistError(TorError):
    """Writing the fleet store to its backing file failed."""
