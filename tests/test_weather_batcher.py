import asyncio
import random

import pytest

from property_weather_search.models import WeatherRecord, utc_now
from property_weather_search.weather.batcher import Coordinate, WeatherBatcher


def _coords(n):
    return [Coordinate(property_id=i, lat=10.0 + i, lng=20.0 + i) for i in range(n)]


def _record(lat, lng, temperature):
    return WeatherRecord(
        latitude=lat,
        longitude=lng,
        temperature=temperature,
        humidity=50,
        weather_code=0,
        condition="Clear",
        last_updated=utc_now(),
    )


@pytest.mark.parametrize("n", [0, 3, 10, 25])
def test_output_matches_input_positionally(n):
    rng = random.Random(n)
    delays = []

    async def fake_sleep(value):
        delays.append(value)

    async def fetch(lat, lng):
        # Finish out of order within each group.
        await asyncio.sleep(rng.random() / 1000)
        return _record(lat, lng, int(lat))

    batcher = WeatherBatcher(fetch, batch_size=10, delay_s=0.1, sleep=fake_sleep)
    coords = _coords(n)
    out = asyncio.run(batcher.fetch_batch(coords))

    assert len(out) == n
    for coord, record in zip(coords, out):
        assert (record.latitude, record.longitude) == (coord.lat, coord.lng)
    groups = -(-n // 10)
    assert batcher.batches_run == groups
    assert delays == [0.1] * max(groups - 1, 0)


def test_groups_run_with_bounded_concurrency():
    active = {"now": 0, "peak": 0}

    async def fetch(lat, lng):
        active["now"] += 1
        active["peak"] = max(active["peak"], active["now"])
        await asyncio.sleep(0)
        active["now"] -= 1
        return _record(lat, lng, 20)

    async def no_sleep(_):
        return None

    batcher = WeatherBatcher(fetch, batch_size=10, delay_s=0.1, sleep=no_sleep)
    asyncio.run(batcher.fetch_batch(_coords(25)))
    assert active["peak"] == 10


def test_one_failure_degrades_only_that_coordinate():
    async def fetch(lat, lng):
        if lat == 12.0:
            raise RuntimeError("boom")
        return _record(lat, lng, 30)

    batcher = WeatherBatcher(fetch, batch_size=10, delay_s=0)
    out = asyncio.run(batcher.fetch_batch(_coords(5)))
    assert [r.is_default for r in out] == [False, False, True, False, False]
    assert out[2].temperature == 25
    assert out[2].condition == "Clear"
