"""File-backed fleet store.

This is the only component allowed to merge ingestion events. It keeps one
record per vehicle (current state plus bounded history) in memory and
persists the whole fleet to a single JSON file.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from torfleet._constants import HISTORY_LIMIT, HISTORY_QUERY_DEFAULT, HISTORY_QUERY_MAX
from torfleet.exceptions import TorPersistError
from torfleet.models.vehicle import HistoryEntry
from torfleet.state.events import IngestionEvent
from torfleet.state.policy import evict_overflow, in_range, insertion_index, merge_patch

_logger = logging.getLogger(__name__)


class StoredVehicle(BaseModel):
    model_config = ConfigDict(extra="forbid")

    data: dict[str, Any] = Field(default_factory=dict)
    history: list[HistoryEntry] = Field(default_factory=list)
    """Newest first."""


class FleetSnapshot(BaseModel):
    """On-disk layout of the store."""

    model_config = ConfigDict(extra="ignore")

    vehicles: dict[str, StoredVehicle] = Field(default_factory=dict)


def _write_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FleetStore:
    """Keyed vehicle state with bounded, deduplicated per-vehicle history.

    Every mutation completes without yielding to the event loop, so a
    single :meth:`apply` is atomic with respect to concurrent sync cycles
    and push requests. Across events the last writer wins.

    Parameters
    ----------
    path : str or Path or None
        JSON file backing the store. ``None`` keeps everything in memory.
    history_limit : int
        Samples retained per vehicle; the oldest is evicted on overflow.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._history_limit = history_limit
        self._vehicles: dict[str, StoredVehicle] = {}
        self._seen: dict[str, set[str]] = {}

    @property
    def path(self) -> Path | None:
        return self._path

    def __len__(self) -> int:
        return len(self._vehicles)

    def __contains__(self, vehicle_id: object) -> bool:
        return vehicle_id in self._vehicles

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _vehicle(self, vehicle_id: str) -> StoredVehicle:
        record = self._vehicles.get(vehicle_id)
        if record is None:
            record = StoredVehicle()
            self._vehicles[vehicle_id] = record
            self._seen[vehicle_id] = set()
        return record

    def apply(self, event: IngestionEvent) -> bool:
        """Upsert one event; returns whether a history entry was added."""
        record = self._vehicle(event.vehicle_id)
        merge_patch(record.data, event.data)
        record.data["vehicleId"] = event.vehicle_id
        record.data["lastUpdate"] = event.observed_at.isoformat()

        if event.history is None:
            return False
        return self._append_history(event.vehicle_id, record, event.history)

    def _append_history(self, vehicle_id: str, record: StoredVehicle, entry: HistoryEntry) -> bool:
        seen = self._seen.setdefault(vehicle_id, set())
        if entry.timestamp in seen:
            return False
        record.history.insert(insertion_index(record.history, entry), entry)
        seen.add(entry.timestamp)
        evicted = evict_overflow(record.history, self._history_limit)
        for old in evicted:
            seen.discard(old.timestamp)
        # An entry older than the whole retained window is evicted on arrival.
        return all(old is not entry for old in evicted)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def vehicle_ids(self) -> list[str]:
        return list(self._vehicles)

    def list_vehicles(self) -> list[dict[str, Any]]:
        """Current state of every vehicle, without history."""
        return [copy.deepcopy(record.data) for record in self._vehicles.values()]

    def get_vehicle(self, vehicle_id: str) -> dict[str, Any] | None:
        record = self._vehicles.get(vehicle_id)
        if record is None:
            return None
        return copy.deepcopy(record.data)

    def get_history(self, vehicle_id: str) -> list[HistoryEntry]:
        record = self._vehicles.get(vehicle_id)
        if record is None:
            return []
        return list(record.history)

    def latest_telemetry(self, vehicle_id: str) -> HistoryEntry | None:
        """Most recent retained sample for a vehicle."""
        record = self._vehicles.get(vehicle_id)
        if record is None or not record.history:
            return None
        return record.history[0]

    def query_history(
        self,
        vehicle_id: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = HISTORY_QUERY_DEFAULT,
    ) -> list[HistoryEntry]:
        """Samples within ``[start, end]``, newest first, at most *limit* (capped)."""
        record = self._vehicles.get(vehicle_id)
        if record is None:
            return []
        limit = max(0, min(limit, HISTORY_QUERY_MAX))
        results: list[HistoryEntry] = []
        for entry in record.history:
            if len(results) >= limit:
                break
            if in_range(entry, start, end):
                results.append(entry)
        return results

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def dump_json(self) -> str:
        return FleetSnapshot(vehicles=self._vehicles).model_dump_json(by_alias=True)

    def load(self) -> None:
        """Replace the in-memory state with the backing file, if it exists.

        Raises
        ------
        TorPersistError
            The file exists but cannot be read or parsed.
        """
        if self._path is None or not self._path.exists():
            return
        try:
            text = self._path.read_text(encoding="utf-8")
            snapshot = FleetSnapshot.model_validate_json(text)
        except (OSError, ValidationError) as exc:
            raise TorPersistError(f"Cannot load fleet store from {self._path}: {exc}") from exc

        self._vehicles = {}
        self._seen = {}
        for vehicle_id, record in snapshot.vehicles.items():
            record.history.sort(key=lambda e: e.recorded_at or datetime.max.replace(tzinfo=UTC), reverse=True)
            evict_overflow(record.history, self._history_limit)
            self._vehicles[vehicle_id] = record
            self._seen[vehicle_id] = {entry.timestamp for entry in record.history}
        _logger.info("Loaded %d vehicles from %s", len(self._vehicles), self._path)

    def save(self) -> None:
        """Write the store to its backing file (blocking)."""
        if self._path is None:
            return
        try:
            _write_atomic(self._path, self.dump_json())
        except OSError as exc:
            raise TorPersistError(f"Cannot write fleet store to {self._path}: {exc}") from exc

    async def async_save(self) -> None:
        """Serialize in the loop, write in a worker thread."""
        if self._path is None:
            return
        text = self.dump_json()
        try:
            await asyncio.to_thread(_write_atomic, self._path, text)
        except OSError as exc:
            raise TorPersistError(f"Cannot write fleet store to {self._path}: {exc}") from exc
