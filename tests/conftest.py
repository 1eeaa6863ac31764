import os
import socket
import sys
import urllib.request
from dataclasses import replace
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "src"

# Prefer repo sources over any installed package.
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def block_network(monkeypatch):
    if os.getenv("LIVE") == "1":
        return

    real_connect = socket.socket.connect

    def guarded_connect(sock, address):
        host = address[0]
        if host not in ("127.0.0.1", "localhost"):
            raise RuntimeError("Network access blocked in tests")
        return real_connect(sock, address)

    monkeypatch.setattr(socket.socket, "connect", guarded_connect)
    monkeypatch.setattr(
        urllib.request,
        "urlopen",
        lambda *args, **kwargs: (_ for _ in ()).throw(
            RuntimeError("Network access blocked in tests")
        ),
    )


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    from property_weather_search.settings import reset_settings_cache

    for name in ("REDIS_URL", "PWS_DB_PATH", "APP_ENV", "WEATHER_REFRESH_INTERVAL_S"):
        monkeypatch.delenv(name, raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()


def coord_key(lat, lng):
    return f"{float(lat):.4f},{float(lng):.4f}"


def make_records(n, with_coords=None, **overrides):
    """n active properties; the first `with_coords` get distinct coordinates."""

    from property_weather_search.models import PropertyRecord

    with_coords = n if with_coords is None else with_coords
    out = []
    for i in range(n):
        has = i < with_coords
        fields = dict(
            id=i + 1,
            name=f"Property {i + 1:03d}",
            city="Miami" if i % 2 == 0 else "Orlando",
            state="FL",
            country="US",
            lat=round(25.0 + i / 100, 4) if has else None,
            lng=round(-80.0 - i / 100, 4) if has else None,
            tags=("beach",) if i % 3 == 0 else (),
            created_at="2024-01-01T00:00:00+00:00",
        )
        fields.update(overrides)
        out.append(PropertyRecord(**fields))
    return out


def open_meteo_transport(current_for, calls=None):
    """MockTransport answering Open-Meteo `current` queries.

    `current_for(lat, lng)` returns the `current` dict (or a bare temperature).
    """

    import httpx

    def handler(request):
        lat = float(request.url.params["latitude"])
        lng = float(request.url.params["longitude"])
        if calls is not None:
            calls.append(coord_key(lat, lng))
        current = current_for(lat, lng)
        if not isinstance(current, dict):
            current = {
                "temperature_2m": current,
                "relative_humidity_2m": 50,
                "weather_code": 0,
            }
        return httpx.Response(200, json={"current": current})

    return httpx.MockTransport(handler)


@pytest.fixture
def build_test_services(tmp_path):
    """Factory for a fully wired Services graph over a temp SQLite store."""

    import httpx

    from property_weather_search.cache import MemoryCache
    from property_weather_search.services import build_services
    from property_weather_search.settings import Settings
    from property_weather_search.storage import PropertyStore

    def _build(records=(), current_for=lambda lat, lng: 22, calls=None, cache=None, **overrides):
        settings = replace(
            Settings.from_env(),
            db_path=str(tmp_path / "properties.sqlite"),
            redis_url=None,
            weather_batch_delay_ms=0,
            **overrides,
        )
        store = PropertyStore(settings.db_path)
        store.upsert_properties(records)
        http = httpx.AsyncClient(transport=open_meteo_transport(current_for, calls))
        return build_services(
            settings,
            store=store,
            cache=cache if cache is not None else MemoryCache(),
            http=http,
        )

    return _build
