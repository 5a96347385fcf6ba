from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from torfleet.exceptions import TorPersistError
from torfleet.models.vehicle import HistoryEntry
from torfleet.state.events import IngestionEvent, IngestionSource
from torfleet.state.store import FleetStore

BASE = datetime(2026, 3, 1, tzinfo=UTC)


def _entry(offset_seconds: int) -> HistoryEntry:
    at = BASE + timedelta(seconds=offset_seconds)
    return HistoryEntry(timestamp=at.isoformat(), recorded_at=at, raw_tor={"ENTRYDATE": at.isoformat()})


def _event(
    vehicle_id: str = "860001",
    *,
    data: dict[str, Any] | None = None,
    history: HistoryEntry | None = None,
    source: IngestionSource = IngestionSource.PUSH,
) -> IngestionEvent:
    return IngestionEvent(
        vehicle_id=vehicle_id,
        source=source,
        observed_at=BASE,
        data=data or {},
        history=history,
    )


def test_upsert_is_idempotent() -> None:
    store = FleetStore()
    event = _event(data={"status": "Online"}, history=_entry(0))

    store.apply(event)
    store.apply(event)

    assert len(store) == 1
    assert store.list_vehicles() == [{"status": "Online", "vehicleId": "860001", "lastUpdate": BASE.isoformat()}]
    assert len(store.get_history("860001")) == 1


def test_shallow_merge_keeps_untouched_keys() -> None:
    store = FleetStore()
    store.apply(_event(data={"status": "Online", "metrics": {"speed": 5, "battery": 80}}))
    store.apply(_event(data={"metrics": {"speed": 9}}))

    vehicle = store.get_vehicle("860001")
    assert vehicle is not None
    assert vehicle["status"] == "Online"
    # Nested objects are replaced, not merged.
    assert vehicle["metrics"] == {"speed": 9}


def test_patch_cannot_overwrite_protected_keys() -> None:
    store = FleetStore()
    store.apply(_event(data={"vehicleId": "other", "history": [], "lastUpdate": "never"}))

    vehicle = store.get_vehicle("860001")
    assert vehicle == {"vehicleId": "860001", "lastUpdate": BASE.isoformat()}


def test_history_dedup_on_timestamp() -> None:
    store = FleetStore()
    assert store.apply(_event(history=_entry(0))) is True
    assert store.apply(_event(history=_entry(0))) is False
    assert len(store.get_history("860001")) == 1


def test_history_cap_evicts_oldest() -> None:
    store = FleetStore()
    for i in range(5001):
        store.apply(_event(history=_entry(i)))

    history = store.get_history("860001")
    assert len(history) == 5000
    assert history[0].timestamp == _entry(5000).timestamp
    assert history[-1].timestamp == _entry(1).timestamp
    # The evicted timestamp may be accepted again.
    assert _entry(0).timestamp not in {entry.timestamp for entry in history}


def test_entry_older_than_full_window_is_not_counted() -> None:
    store = FleetStore(history_limit=3)
    for i in (10, 11, 12):
        store.apply(_event(history=_entry(i)))

    assert store.apply(_event(history=_entry(0))) is False
    assert [e.timestamp for e in store.get_history("860001")] == [_entry(i).timestamp for i in (12, 11, 10)]
    assert store.apply(_event(history=_entry(13))) is True


def test_history_is_newest_first_regardless_of_arrival() -> None:
    store = FleetStore()
    for offset in (10, 30, 20):
        store.apply(_event(history=_entry(offset)))

    assert [e.recorded_at for e in store.get_history("860001")] == [
        BASE + timedelta(seconds=30),
        BASE + timedelta(seconds=20),
        BASE + timedelta(seconds=10),
    ]
    latest = store.latest_telemetry("860001")
    assert latest is not None
    assert latest.recorded_at == BASE + timedelta(seconds=30)


def test_query_history_bounds_and_limit() -> None:
    store = FleetStore()
    for offset in range(10):
        store.apply(_event(history=_entry(offset)))

    window = store.query_history(
        "860001",
        start=BASE + timedelta(seconds=2),
        end=BASE + timedelta(seconds=5),
    )
    assert [e.recorded_at for e in window] == [BASE + timedelta(seconds=s) for s in (5, 4, 3, 2)]

    assert len(store.query_history("860001", limit=3)) == 3
    assert store.query_history("missing") == []


def test_query_history_limit_is_capped() -> None:
    store = FleetStore()
    for offset in range(1200):
        store.apply(_event(history=_entry(offset)))
    assert len(store.query_history("860001", limit=5000)) == 1000


def test_persistence_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "fleet_db.json"
    store = FleetStore(path)
    store.apply(_event(data={"status": "Idle"}, history=_entry(1)))
    store.apply(_event("860002", data={"status": "Off"}))
    store.save()

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert set(on_disk["vehicles"]) == {"860001", "860002"}
    assert on_disk["vehicles"]["860001"]["history"][0]["rawTor"] == {"ENTRYDATE": _entry(1).timestamp}

    reloaded = FleetStore(path)
    reloaded.load()
    assert reloaded.get_vehicle("860001") == store.get_vehicle("860001")
    assert reloaded.get_history("860001") == store.get_history("860001")
    # Dedup survives a restart.
    assert reloaded.apply(_event(history=_entry(1))) is False


@pytest.mark.asyncio
async def test_async_save_writes_file(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "fleet_db.json"
    store = FleetStore(path)
    store.apply(_event(data={"status": "Online"}))

    await store.async_save()

    assert json.loads(path.read_text(encoding="utf-8"))["vehicles"]["860001"]["data"]["status"] == "Online"
    assert list(path.parent.glob("*.tmp")) == []


def test_load_missing_file_is_empty(tmp_path: Path) -> None:
    store = FleetStore(tmp_path / "absent.json")
    store.load()
    assert len(store) == 0


def test_load_corrupt_file_raises(tmp_path: Path) -> None:
    path = tmp_path / "fleet_db.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(TorPersistError):
        FleetStore(path).load()


def test_save_failure_raises_persist_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = FleetStore(blocker / "fleet_db.json")
    store.apply(_event())
    with pytest.raises(TorPersistError):
        store.save()


def test_memory_only_store_skips_persistence() -> None:
    store = FleetStore()
    store.apply(_event())
    store.save()
    assert store.path is None
