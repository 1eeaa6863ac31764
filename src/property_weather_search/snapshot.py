from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from property_weather_search.errors import CacheUnavailable, StoreUnavailable
from property_weather_search.models import PropertyRecord


logger = logging.getLogger("pws.snapshot")

SNAPSHOT_KEY = "properties:all"


@dataclass(frozen=True)
class Snapshot:
    records: Tuple[PropertyRecord, ...]
    version: int
    loaded_at: float
    loaded_at_iso: str
    source: str


class PropertySnapshotCache:
    """Time-bounded in-process copy of all active property records.

    A cold or expired snapshot is reloaded from the store before `get`
    returns. Reloads are single-flight: concurrent callers wait on the lock
    and then reuse the snapshot the first caller loaded. A failed reload
    raises StoreUnavailable and keeps the previous state.

    When `shared` is given (a cross-process backend such as Redis), reloads
    publish the records under `properties:all` together with the wall-clock
    load time. A cold process tries that copy before hitting the store and
    inherits its age, so shared data never outlives one TTL.
    """

    def __init__(
        self,
        store,
        ttl_s: int = 3600,
        shared=None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_s = int(ttl_s)
        self.shared = shared
        self._clock = clock
        self._wall_clock = wall_clock
        self._lock = asyncio.Lock()
        self._snapshot: Optional[Snapshot] = None
        self._force_store = False
        self._version = 0
        self._stats = {"hits": 0, "reloads": 0, "shared_loads": 0, "failures": 0}
        self._last_error: Optional[str] = None

    def _fresh(self, snap: Optional[Snapshot]) -> bool:
        return snap is not None and (self._clock() - snap.loaded_at) < self.ttl_s

    async def get(self) -> Snapshot:
        snap = self._snapshot
        if self._fresh(snap):
            self._stats["hits"] += 1
            return snap
        async with self._lock:
            snap = self._snapshot
            if self._fresh(snap):
                self._stats["hits"] += 1
                return snap
            return await self._reload()

    def invalidate(self) -> None:
        self._snapshot = None
        self._force_store = True
        logger.info("property snapshot invalidated")

    async def refresh(self) -> Snapshot:
        async with self._lock:
            self._force_store = True
            return await self._reload()

    async def _reload(self) -> Snapshot:
        if self.shared is not None and not self._force_store:
            found = await self._read_shared()
            if found is not None:
                records, age = found
                self._stats["shared_loads"] += 1
                return self._install(records, source="shared-cache", age=age)

        started = time.perf_counter()
        try:
            records = await asyncio.to_thread(self.store.find_active_properties)
        except sqlite3.Error as exc:
            self._stats["failures"] += 1
            self._last_error = str(exc)
            logger.error("property snapshot reload failed: %s", exc)
            raise StoreUnavailable(f"property store unavailable: {exc}") from exc

        self._stats["reloads"] += 1
        self._force_store = False
        self._last_error = None
        snap = self._install(records, source="store")
        logger.info(
            "property snapshot v%s loaded %s records in %.1fms",
            snap.version,
            len(snap.records),
            (time.perf_counter() - started) * 1000,
        )
        await self._publish(records)
        return snap

    def _install(self, records, *, source: str, age: float = 0.0) -> Snapshot:
        self._version += 1
        snap = Snapshot(
            records=tuple(records),
            version=self._version,
            loaded_at=self._clock() - age,
            loaded_at_iso=datetime.fromtimestamp(
                self._wall_clock() - age, tz=timezone.utc
            ).isoformat(),
            source=source,
        )
        self._snapshot = snap
        return snap

    async def _read_shared(self) -> Optional[Tuple[list, float]]:
        try:
            raw = await self.shared.get(SNAPSHOT_KEY)
        except CacheUnavailable as exc:
            logger.warning("shared snapshot read failed, loading from store: %s", exc)
            return None
        if not isinstance(raw, dict) or not isinstance(raw.get("records"), list):
            return None
        try:
            age = max(0.0, self._wall_clock() - float(raw["loaded_at"]))
            records = [PropertyRecord.from_dict(item) for item in raw["records"]]
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("discarding malformed shared snapshot: %s", exc)
            return None
        if age >= self.ttl_s:
            logger.info("shared snapshot is %.0fs old, loading from store", age)
            return None
        return records, age

    async def _publish(self, records) -> None:
        if self.shared is None:
            return
        payload = {
            "loaded_at": self._wall_clock(),
            "records": [r.to_dict() for r in records],
        }
        try:
            await self.shared.set(SNAPSHOT_KEY, payload, ttl=self.ttl_s)
        except CacheUnavailable as exc:
            logger.warning("shared snapshot write failed: %s", exc)

    async def clear_shared(self) -> None:
        if self.shared is None:
            return
        try:
            await self.shared.delete(SNAPSHOT_KEY)
        except CacheUnavailable as exc:
            logger.warning("shared snapshot delete failed: %s", exc)

    def stats(self) -> Dict[str, Any]:
        snap = self._snapshot
        return {
            "ttl_s": self.ttl_s,
            "warm": self._fresh(snap),
            "version": snap.version if snap else self._version,
            "records": len(snap.records) if snap else 0,
            "loaded_at": snap.loaded_at_iso if snap else None,
            "age_s": round(self._clock() - snap.loaded_at, 3) if snap else None,
            "source": snap.source if snap else None,
            "last_error": self._last_error,
            **self._stats,
        }
