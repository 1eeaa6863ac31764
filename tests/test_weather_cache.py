import asyncio

import pytest

from property_weather_search.cache import MemoryCache
from property_weather_search.errors import CacheUnavailable
from property_weather_search.models import WeatherRecord, default_weather, utc_now
from property_weather_search.weather.batcher import Coordinate, WeatherBatcher
from property_weather_search.weather.cache import WeatherRecordCache, weather_key


def _record(lat, lng, temperature=28):
    return WeatherRecord(
        latitude=round(lat, 4),
        longitude=round(lng, 4),
        temperature=temperature,
        humidity=55,
        weather_code=1,
        condition="Cloudy",
        last_updated=utc_now(),
    )


class _CountingFetch:
    def __init__(self, result=None, delay=0.0):
        self.calls = []
        self.result = result
        self.delay = delay

    async def __call__(self, lat, lng):
        self.calls.append((lat, lng))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result(lat, lng) if self.result else _record(lat, lng)


class _BrokenBackend:
    backend = "broken"

    async def get(self, key):
        raise CacheUnavailable("down")

    async def set(self, key, value, ttl=None):
        raise CacheUnavailable("down")

    async def delete_prefix(self, prefix):
        raise CacheUnavailable("down")

    async def count_prefix(self, prefix):
        raise CacheUnavailable("down")


def test_key_rounds_to_four_decimals():
    assert weather_key(25.761712, -80.191791) == "weather:25.7617,-80.1918"
    assert weather_key(1, 2) == "weather:1.0000,2.0000"


def test_miss_then_hit():
    fetch = _CountingFetch()
    cache = WeatherRecordCache(MemoryCache(), fetch, ttl_s=1800)

    async def scenario():
        first = await cache.get_or_fetch(25.76171, -80.19179)
        second = await cache.get_or_fetch(25.76169, -80.19181)
        return first, second

    first, second = asyncio.run(scenario())
    assert len(fetch.calls) == 1
    assert second.temperature == first.temperature
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1


def test_entries_use_configured_ttl():
    backend = MemoryCache(clock=lambda: 0.0)
    cache = WeatherRecordCache(backend, _CountingFetch(), ttl_s=1800)
    asyncio.run(cache.get_or_fetch(1.0, 2.0))
    expires_at, _ = backend._entries["weather:1.0000,2.0000"]
    assert expires_at == 1800


def test_default_records_are_not_cached():
    fetch = _CountingFetch(result=default_weather)
    cache = WeatherRecordCache(MemoryCache(), fetch)

    async def scenario():
        await cache.get_or_fetch(1.0, 2.0)
        await cache.get_or_fetch(1.0, 2.0)
        return await cache.count()

    assert asyncio.run(scenario()) == 0
    assert len(fetch.calls) == 2


def test_backend_outage_fails_open():
    fetch = _CountingFetch()
    cache = WeatherRecordCache(_BrokenBackend(), fetch)

    async def scenario():
        record = await cache.get_or_fetch(1.0, 2.0)
        flushed = await cache.flush()
        count = await cache.count()
        return record, flushed, count

    record, flushed, count = asyncio.run(scenario())
    assert record.temperature == 28
    assert flushed == 0
    assert count is None
    assert cache.stats()["backend_errors"] >= 2


def test_concurrent_misses_share_one_fetch():
    fetch = _CountingFetch(delay=0.01)
    cache = WeatherRecordCache(MemoryCache(), fetch)

    async def scenario():
        return await asyncio.gather(*[cache.get_or_fetch(5.0, 6.0) for _ in range(8)])

    results = asyncio.run(scenario())
    assert len(fetch.calls) == 1
    assert {r.temperature for r in results} == {28}
    assert cache.stats()["shared"] == 7
    assert cache.stats()["inflight"] == 0


def test_malformed_entry_is_treated_as_miss():
    backend = MemoryCache()
    fetch = _CountingFetch()
    cache = WeatherRecordCache(backend, fetch)

    async def scenario():
        await backend.set(weather_key(1.0, 2.0), {"temperature": "n/a"}, ttl=60)
        return await cache.get_or_fetch(1.0, 2.0)

    record = asyncio.run(scenario())
    assert record.temperature == 28
    assert len(fetch.calls) == 1


def test_cancelled_caller_does_not_fail_joined_search():
    fetch = _CountingFetch(delay=0.05)
    cache = WeatherRecordCache(MemoryCache(), fetch)
    batcher = WeatherBatcher(cache.get_or_fetch, batch_size=5, delay_s=0)
    coords = [Coordinate(property_id=1, lat=5.0, lng=6.0)]

    async def scenario():
        first = asyncio.create_task(batcher.fetch_batch(coords))
        await asyncio.sleep(0.01)
        second = asyncio.create_task(batcher.fetch_batch(coords))
        await asyncio.sleep(0.01)
        first.cancel()
        results = await second
        with pytest.raises(asyncio.CancelledError):
            await first
        return results

    results = asyncio.run(scenario())
    assert len(fetch.calls) == 1
    assert results[0].is_default is False
    assert results[0].temperature == 28
    assert cache.stats()["shared"] == 1
    assert cache.stats()["inflight"] == 0
