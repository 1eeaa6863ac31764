import asyncio

import httpx
import pytest

from conftest import coord_key, make_records
from property_weather_search.errors import StoreUnavailable
from property_weather_search.search.filters import parse_filters


def _search(services, **params):
    return asyncio.run(services.engine.search(parse_filters(params)))


def _hot_first(n_hot, records, hot=35, cold=20):
    """Temperature function: the first n_hot located records are hot."""

    located = [r for r in records if r.has_coordinates]
    hot_keys = {coord_key(r.lat, r.lng) for r in located[:n_hot]}

    def current_for(lat, lng):
        return hot if coord_key(lat, lng) in hot_keys else cold

    return current_for


def test_weather_filter_counts_whole_filtered_set(build_test_services):
    records = make_records(100, with_coords=60)
    calls = []
    services = build_test_services(records, current_for=_hot_first(10, records), calls=calls)

    result = _search(services, tempMin="30")
    assert result.total == 10
    assert result.has_more is False
    assert len(result.items) == 10
    assert all(item.property.has_coordinates for item in result.items)
    assert all(item.weather.temperature >= 30 for item in result.items)
    assert result.weather_filtered is True
    # Every located record was enriched, none of the coordinate-less ones.
    assert len(calls) == 60


def test_weather_filter_paginates_after_filtering(build_test_services):
    records = make_records(100, with_coords=60)
    services = build_test_services(records, current_for=_hot_first(25, records))

    page1 = _search(services, tempMin="30", limit="10")
    page3 = _search(services, tempMin="30", limit="10", offset="20")
    assert (page1.total, len(page1.items), page1.has_more) == (25, 10, True)
    assert (page3.total, len(page3.items), page3.has_more) == (25, 5, False)


def test_no_weather_filter_enriches_only_the_page(build_test_services):
    records = make_records(45)
    calls = []
    services = build_test_services(records, calls=calls)

    result = _search(services)
    assert result.total == 45
    assert len(result.items) == 20
    assert result.has_more is True
    assert len(calls) == 20
    assert [item.property.id for item in result.items] == list(range(1, 21))


@pytest.mark.parametrize(
    "offset,limit,returned,has_more",
    [
        ("0", "45", 45, False),
        ("25", "20", 20, False),
        ("24", "20", 20, True),
        ("40", "20", 5, False),
        ("45", "20", 0, False),
        ("90", "20", 0, False),
    ],
)
def test_has_more_boundaries(build_test_services, offset, limit, returned, has_more):
    services = build_test_services(make_records(45))
    result = _search(services, offset=offset, limit=limit)
    assert result.total == 45
    assert len(result.items) == returned
    assert result.has_more is has_more


def test_coordinate_less_records_without_weather_filter(build_test_services):
    records = make_records(4, with_coords=2)
    services = build_test_services(records)
    result = _search(services)
    assert result.total == 4
    weather = {item.property.id: item.weather for item in result.items}
    assert weather[1] is not None and weather[2] is not None
    assert weather[3] is None and weather[4] is None


def test_coordinate_less_records_excluded_by_weather_filter(build_test_services):
    records = make_records(4, with_coords=2)
    services = build_test_services(records)
    result = _search(services, humidityMin="0")
    assert result.total == 2
    assert {item.property.id for item in result.items} == {1, 2}


def test_zero_coordinates_count_as_missing(build_test_services):
    records = make_records(2, lat=0.0, lng=0.0)
    services = build_test_services(records)
    assert _search(services, tempMax="50").total == 0


def test_structural_filters_are_case_insensitive_substrings(build_test_services):
    services = build_test_services(make_records(10))
    assert _search(services, city="miami").total == 5
    assert _search(services, city="ORL", state="fl").total == 5
    assert _search(services, searchText="property 01").total == 1
    assert _search(services, searchText="nothing like this").total == 0


def test_condition_and_humidity_filters(build_test_services):
    records = make_records(6)
    rainy = {coord_key(r.lat, r.lng) for r in records[:2]}

    def current_for(lat, lng):
        if coord_key(lat, lng) in rainy:
            return {"temperature_2m": 18, "relative_humidity_2m": 90, "weather_code": 63}
        return {"temperature_2m": 28, "relative_humidity_2m": 40, "weather_code": 0}

    services = build_test_services(records, current_for=current_for)
    assert _search(services, weatherCondition="Rainy").total == 2
    assert _search(services, humidityMin="80", humidityMax="90").total == 2
    assert _search(services, weatherCondition="Clear", tempMin="28", tempMax="28").total == 4
    assert _search(services, weatherCondition="Snow").total == 0


def test_repeated_searches_are_stable(build_test_services):
    records = make_records(30, with_coords=20)
    calls = []
    services = build_test_services(records, current_for=_hot_first(7, records), calls=calls)

    first = _search(services, tempMin="30", limit="5")
    second = _search(services, tempMin="30", limit="5")
    assert first.total == second.total == 7
    assert [i.property.id for i in first.items] == [i.property.id for i in second.items]
    # Second run is served from the weather cache.
    assert len(calls) == 20


def test_provider_outage_returns_defaults(build_test_services):
    services = build_test_services(make_records(3))
    services.fetcher.client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(503))
    )
    result = _search(services)
    assert all(item.weather.is_default for item in result.items)
    assert all(item.weather.temperature == 25 for item in result.items)
    # Defaults satisfy filters that admit them.
    assert _search(services, tempMin="25", tempMax="25").total == 3


def test_store_failure_surfaces_and_is_counted(build_test_services, monkeypatch):
    import sqlite3

    services = build_test_services(make_records(3))

    def broken():
        raise sqlite3.OperationalError("no such table: properties")

    monkeypatch.setattr(services.store, "find_active_properties", broken)
    with pytest.raises(StoreUnavailable):
        _search(services)
    assert services.metrics.snapshot()["errors"] == 1


def test_metrics_track_searches(build_test_services):
    services = build_test_services(make_records(3))
    _search(services)
    _search(services, tempMin="0")
    perf = services.metrics.snapshot()
    assert perf["searches"] == 2
    assert perf["weatherFilteredSearches"] == 1


def test_suggestions(build_test_services):
    services = build_test_services(make_records(15, city="", state="FL"))
    rows = asyncio.run(services.engine.suggest("property 00"))
    assert [r["id"] for r in rows] == list(range(1, 10))
    assert rows[0] == {
        "id": 1,
        "label": "Property 001, FL",
        "value": "Property 001",
        "city": "",
        "state": "FL",
    }
    assert len(asyncio.run(services.engine.suggest("prop"))) == 10
    assert asyncio.run(services.engine.suggest(" p ")) == []
