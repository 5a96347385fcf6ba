"""Service configuration for torfleet."""

from __future__ import annotations

import dataclasses
import json
import os
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from torfleet._constants import (
    BASE_URL,
    HISTORY_LIMIT,
    LOGIN_TIMEOUT_S,
    META_ENDPOINT,
    NON_COMMUNICATING_AFTER_MINUTES,
    OFFLINE_AFTER_MINUTES,
    PAGE_SIZE,
    REQUEST_TIMEOUT_S,
    TELEMETRY_ENDPOINT,
)
from torfleet.exceptions import TorConfigError


def _env_json_object(name: str, value: str) -> dict[str, Any]:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise TorConfigError(f"{name} is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise TorConfigError(f"{name} must be a JSON object")
    return parsed


@dataclasses.dataclass(frozen=True)
class TorConfig:
    """Service configuration.

    Parameters
    ----------
    username : str
        TOR IoT API user.  Empty disables the pull sync (push-only deployment).
    password : str
        TOR IoT API password.
    base_url : str
        Provider API base URL.
    meta_endpoint : str
        Endpoint returning vehicle metadata (HWID, registration, chassis).
    telemetry_endpoint : str
        Endpoint returning the latest telemetry sample per device.
    meta_filter : dict
        Extra body fields sent with every metadata page request.
    telemetry_filter : dict
        Extra body fields sent with every telemetry page request.
    page_size : int
        Records requested per page.
    login_timeout : float
        Seconds allowed for the login call.
    request_timeout : float
        Seconds allowed for each page request.
    sync_interval : float
        Seconds between sync cycles.
    max_cycle_seconds : float
        Upper bound on a whole sync cycle.  ``0`` disables the cap.
    history_limit : int
        Samples retained per vehicle.
    offline_after_minutes : int
        Sample age after which a vehicle is reported ``Offline``.
    non_communicating_after_minutes : int
        Sample age after which a vehicle is reported ``Non-Communicating``.
    device_timezone : str
        IANA zone used for device timestamps that carry no offset.
    db_file : str or None
        JSON file backing the fleet store.  ``None`` keeps state in memory.
    host : str
        Bind address for the HTTP server.
    port : int
        Bind port for the HTTP server.
    """

    username: str = ""
    password: str = ""
    base_url: str = BASE_URL
    meta_endpoint: str = META_ENDPOINT
    telemetry_endpoint: str = TELEMETRY_ENDPOINT
    meta_filter: dict[str, Any] = dataclasses.field(default_factory=dict)
    telemetry_filter: dict[str, Any] = dataclasses.field(default_factory=dict)
    page_size: int = PAGE_SIZE
    login_timeout: float = LOGIN_TIMEOUT_S
    request_timeout: float = REQUEST_TIMEOUT_S
    sync_interval: float = 60.0
    max_cycle_seconds: float = 900.0
    history_limit: int = HISTORY_LIMIT
    offline_after_minutes: int = OFFLINE_AFTER_MINUTES
    non_communicating_after_minutes: int = NON_COMMUNICATING_AFTER_MINUTES
    device_timezone: str = "UTC"
    db_file: str | None = "fleet_db.json"
    host: str = "0.0.0.0"
    port: int = 5000

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise TorConfigError(f"page_size must be positive, got {self.page_size}")
        if self.history_limit <= 0:
            raise TorConfigError(f"history_limit must be positive, got {self.history_limit}")
        if self.sync_interval <= 0:
            raise TorConfigError(f"sync_interval must be positive, got {self.sync_interval}")

    @property
    def sync_enabled(self) -> bool:
        """Whether provider credentials are present."""
        return bool(self.username and self.password)

    @property
    def device_tz(self) -> ZoneInfo:
        """Zone for offset-less device timestamps."""
        try:
            return ZoneInfo(self.device_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise TorConfigError(f"Unknown device_timezone {self.device_timezone!r}") from exc

    @classmethod
    def from_env(cls, **overrides: Any) -> TorConfig:
        """Create configuration from environment variables.

        Reads ``TOR_USER`` and ``TOR_PASS`` plus optional ``TOR_*`` knobs
        and ``PORT``.  Explicit keyword arguments override environment
        values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TorConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "TOR_USER": "username",
            "TOR_PASS": "password",
            "TOR_BASE_URL": "base_url",
            "TOR_META_ENDPOINT": "meta_endpoint",
            "TOR_TELEMETRY_ENDPOINT": "telemetry_endpoint",
            "TOR_DEVICE_TIMEZONE": "device_timezone",
            "TOR_DB_FILE": "db_file",
            "TOR_HOST": "host",
        }
        _ENV_INT_MAP = {
            "TOR_PAGE_SIZE": "page_size",
            "TOR_HISTORY_LIMIT": "history_limit",
            "TOR_OFFLINE_AFTER_MINUTES": "offline_after_minutes",
            "TOR_NON_COMMUNICATING_AFTER_MINUTES": "non_communicating_after_minutes",
            "PORT": "port",
        }
        _ENV_FLOAT_MAP = {
            "TOR_LOGIN_TIMEOUT": "login_timeout",
            "TOR_REQUEST_TIMEOUT": "request_timeout",
            "TOR_SYNC_INTERVAL": "sync_interval",
            "TOR_MAX_CYCLE_SECONDS": "max_cycle_seconds",
        }
        _ENV_JSON_MAP = {
            "TOR_META_FILTER": "meta_filter",
            "TOR_TELEMETRY_FILTER": "telemetry_filter",
        }

        config_kwargs: dict[str, Any] = {}
        try:
            for env_key, field_name in _ENV_STR_MAP.items():
                val = env.get(env_key)
                if val is not None:
                    config_kwargs[field_name] = val
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None:
                    config_kwargs[field_name] = int(val)
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None:
                    config_kwargs[field_name] = float(val)
        except ValueError as exc:
            raise TorConfigError(f"Invalid numeric environment value: {exc}") from exc

        for env_key, field_name in _ENV_JSON_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = _env_json_object(env_key, val)

        # An empty TOR_DB_FILE means "memory only".
        if config_kwargs.get("db_file") == "":
            config_kwargs["db_file"] = None

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
