from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, TypeVar

from property_weather_search.models import WeatherRecord, default_weather


logger = logging.getLogger("pws.weather")

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class Coordinate:
    property_id: int
    lat: float
    lng: float


def chunked(seq: Sequence[T], n: int) -> Iterable[List[T]]:
    n = max(int(n), 1)
    for i in range(0, len(seq), n):
        yield list(seq[i : i + n])


class WeatherBatcher:
    """Run per-item weather lookups in fixed-size concurrent groups.

    Groups run one after another with a pacing delay in between; items in a
    group run concurrently. Output is positional: result[i] belongs to
    items[i] regardless of completion order.
    """

    def __init__(
        self,
        fetch_one: Callable[[float, float], Awaitable[WeatherRecord]],
        batch_size: int = 10,
        delay_s: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.fetch_one = fetch_one
        self.batch_size = max(1, int(batch_size))
        self.delay_s = max(0.0, float(delay_s))
        self._sleep = sleep
        self.batches_run = 0

    async def run(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[R]],
        fallback: Callable[[T, BaseException], R],
    ) -> List[R]:
        results: List[R] = []
        groups = list(chunked(items, self.batch_size))
        for idx, group in enumerate(groups):
            outcomes = await asyncio.gather(
                *[worker(item) for item in group], return_exceptions=True
            )
            for item, outcome in zip(group, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    results.append(fallback(item, outcome))
                else:
                    results.append(outcome)
            self.batches_run += 1
            if self.delay_s and idx < len(groups) - 1:
                await self._sleep(self.delay_s)
        return results

    async def fetch_batch(
        self, coordinates: Sequence[Coordinate], fetch_one: Optional[Callable] = None
    ) -> List[WeatherRecord]:
        fetch = fetch_one or self.fetch_one

        async def _worker(coord: Coordinate) -> WeatherRecord:
            return await fetch(coord.lat, coord.lng)

        def _fallback(coord: Coordinate, exc: BaseException) -> WeatherRecord:
            logger.warning(
                "weather lookup failed for property %s (%.4f,%.4f): %s",
                coord.property_id,
                coord.lat,
                coord.lng,
                exc,
            )
            return default_weather(coord.lat, coord.lng)

        return await self.run(coordinates, _worker, _fallback)
