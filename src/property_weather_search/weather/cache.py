from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from property_weather_search.errors import CacheUnavailable
from property_weather_search.models import WeatherRecord, round_coord


logger = logging.getLogger("pws.weather")

KEY_PREFIX = "weather:"


def weather_key(lat: float, lng: float) -> str:
    return f"{KEY_PREFIX}{round_coord(lat):.4f},{round_coord(lng):.4f}"


class WeatherRecordCache:
    """Per-coordinate weather cache in front of the provider.

    Keys are the coordinate pair rounded to 4 decimals. Backend failures are
    logged and treated as misses (fail-open). Concurrent misses for the same
    key share one upstream fetch. Fallback records are not stored.
    """

    def __init__(
        self,
        backend,
        fetch: Callable[[float, float], Awaitable[WeatherRecord]],
        ttl_s: int = 1800,
    ):
        self.backend = backend
        self.fetch = fetch
        self.ttl_s = int(ttl_s)
        self._inflight: Dict[str, "asyncio.Future[WeatherRecord]"] = {}
        self._stats = {"hits": 0, "misses": 0, "fetches": 0, "shared": 0, "backend_errors": 0}

    async def get(self, lat: float, lng: float) -> Optional[WeatherRecord]:
        key = weather_key(lat, lng)
        try:
            raw = await self.backend.get(key)
        except CacheUnavailable as exc:
            self._stats["backend_errors"] += 1
            logger.warning("weather cache read failed, fetching directly: %s", exc)
            return None
        if raw is None:
            return None
        try:
            return WeatherRecord.from_dict(raw)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("discarding malformed weather cache entry %s: %s", key, exc)
            return None

    async def put(self, record: WeatherRecord, ttl: Optional[int] = None) -> bool:
        key = weather_key(record.latitude, record.longitude)
        try:
            await self.backend.set(key, record.to_dict(), ttl=self.ttl_s if ttl is None else ttl)
        except CacheUnavailable as exc:
            self._stats["backend_errors"] += 1
            logger.warning("weather cache write failed for %s: %s", key, exc)
            return False
        return True

    async def get_or_fetch(self, lat: float, lng: float) -> WeatherRecord:
        cached = await self.get(lat, lng)
        if cached is not None:
            self._stats["hits"] += 1
            return cached

        self._stats["misses"] += 1
        key = weather_key(lat, lng)
        pending = self._inflight.get(key)
        if pending is not None:
            self._stats["shared"] += 1
        else:
            logger.debug("weather cache miss for %s", key)
            self._stats["fetches"] += 1
            # The fetch runs in its own task so a cancelled caller does not
            # cancel it for everyone else waiting on the same key.
            pending = asyncio.ensure_future(self._fetch_and_store(lat, lng))
            self._inflight[key] = pending
            pending.add_done_callback(lambda task, key=key: self._settle(key, task))
        return await asyncio.shield(pending)

    async def _fetch_and_store(self, lat: float, lng: float) -> WeatherRecord:
        record = await self.fetch(lat, lng)
        if not record.is_default:
            await self.put(record)
        return record

    def _settle(self, key: str, task: "asyncio.Task[WeatherRecord]") -> None:
        if self._inflight.get(key) is task:
            self._inflight.pop(key, None)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("weather fetch for %s failed: %s", key, task.exception())

    async def flush(self) -> int:
        try:
            return await self.backend.delete_prefix(KEY_PREFIX)
        except CacheUnavailable as exc:
            self._stats["backend_errors"] += 1
            logger.warning("weather cache flush failed: %s", exc)
            return 0

    async def count(self) -> Optional[int]:
        try:
            return await self.backend.count_prefix(KEY_PREFIX)
        except CacheUnavailable as exc:
            logger.warning("weather cache count failed: %s", exc)
            return None

    def stats(self) -> Dict[str, int]:
        return {"ttl_s": self.ttl_s, "inflight": len(self._inflight), **self._stats}
