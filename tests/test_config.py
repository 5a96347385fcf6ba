from __future__ import annotations

import pytest

from torfleet.config import TorConfig
from torfleet.exceptions import TorConfigError

_ENV_KEYS = (
    "TOR_USER",
    "TOR_PASS",
    "TOR_BASE_URL",
    "TOR_DB_FILE",
    "TOR_PAGE_SIZE",
    "TOR_SYNC_INTERVAL",
    "TOR_META_FILTER",
    "TOR_DEVICE_TIMEZONE",
    "PORT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_from_env_defaults() -> None:
    config = TorConfig.from_env()
    assert config.base_url == "https://torapis.tor-iot.com"
    assert config.port == 5000
    assert config.page_size == 1000
    assert config.db_file == "fleet_db.json"
    assert config.sync_enabled is False


def test_from_env_reads_credentials_and_knobs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOR_USER", "ops")
    monkeypatch.setenv("TOR_PASS", "secret")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("TOR_PAGE_SIZE", "250")
    monkeypatch.setenv("TOR_SYNC_INTERVAL", "30")
    monkeypatch.setenv("TOR_META_FILTER", '{"customerId": 7}')

    config = TorConfig.from_env()
    assert config.sync_enabled is True
    assert config.port == 8080
    assert config.page_size == 250
    assert config.sync_interval == 30.0
    assert config.meta_filter == {"customerId": 7}


def test_overrides_win_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "8080")
    config = TorConfig.from_env(port=9000)
    assert config.port == 9000


def test_empty_db_file_means_memory_only(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOR_DB_FILE", "")
    assert TorConfig.from_env().db_file is None


def test_invalid_numeric_env_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOR_PAGE_SIZE", "lots")
    with pytest.raises(TorConfigError):
        TorConfig.from_env()


def test_invalid_filter_json_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOR_META_FILTER", "[1, 2]")
    with pytest.raises(TorConfigError):
        TorConfig.from_env()


def test_non_positive_page_size_rejected() -> None:
    with pytest.raises(TorConfigError):
        TorConfig(page_size=0)


def test_unknown_device_timezone_rejected() -> None:
    with pytest.raises(TorConfigError):
        _ = TorConfig(device_timezone="Mars/Olympus").device_tz
