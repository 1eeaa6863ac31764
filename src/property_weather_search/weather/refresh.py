from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List

from property_weather_search.weather.batcher import Coordinate


logger = logging.getLogger("pws.weather")


class WeatherRefresher:
    """Re-fetch weather for every distinct coordinate in the snapshot.

    Optional maintenance pass, separate from request-path cache-or-fetch. It
    bypasses the cache read, stores fresh records and leaves existing entries
    alone when the provider falls back to defaults.
    """

    def __init__(self, snapshots, fetcher, batcher, weather_cache):
        self.snapshots = snapshots
        self.fetcher = fetcher
        self.batcher = batcher
        self.weather_cache = weather_cache
        self.runs = 0

    async def _coordinates(self) -> List[Coordinate]:
        snapshot = await self.snapshots.get()
        seen = set()
        out: List[Coordinate] = []
        for record in snapshot.records:
            if not record.has_coordinates:
                continue
            key = (round(record.lat, 4), round(record.lng, 4))
            if key in seen:
                continue
            seen.add(key)
            out.append(Coordinate(property_id=record.id, lat=record.lat, lng=record.lng))
        return out

    async def run_once(self) -> Dict[str, Any]:
        started = time.perf_counter()
        coords = await self._coordinates()
        records = await self.batcher.fetch_batch(coords, fetch_one=self.fetcher.fetch_or_default)

        stored = 0
        defaulted = 0
        for record in records:
            if record.is_default:
                defaulted += 1
                continue
            if await self.weather_cache.put(record):
                stored += 1

        self.runs += 1
        summary = {
            "coordinates": len(coords),
            "refreshed": stored,
            "defaulted": defaulted,
            "seconds": round(time.perf_counter() - started, 3),
        }
        logger.info(
            "weather refresh: %s coordinates, %s stored, %s defaulted",
            summary["coordinates"],
            stored,
            defaulted,
        )
        return summary

    async def run_forever(self, interval_s: float, sleep=asyncio.sleep) -> None:
        interval_s = max(30.0, float(interval_s))
        logger.warning("weather refresher enabled: interval_s=%s", interval_s)
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("weather refresh tick failed: %s", e)
            await sleep(interval_s)
