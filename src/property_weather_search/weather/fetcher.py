from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional

import httpx

from property_weather_search.errors import ProviderError
from property_weather_search.models import (
    DEFAULT_HUMIDITY,
    DEFAULT_TEMPERATURE,
    DEFAULT_WEATHER_CODE,
    WeatherRecord,
    default_weather,
    round_coord,
    utc_now,
)
from property_weather_search.settings import DEFAULT_WEATHER_API_URL
from property_weather_search.weather.codes import condition_for_code


logger = logging.getLogger("pws.weather")

CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,weather_code"
USER_AGENT = "property-weather-search/1.0"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _as_number(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        n = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(n) or math.isinf(n):
        return default
    return n


class WeatherFetcher:
    """Fetch current conditions for one coordinate from Open-Meteo.

    `fetch` raises ProviderError on any failure. `fetch_or_default` never
    raises: weather unavailability must not fail a search, so it degrades to
    the default record.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = DEFAULT_WEATHER_API_URL,
        timeout_s: float = 5.0,
    ):
        self.client = client
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.calls = 0
        self.failures = 0

    def _params(self, lat: float, lng: float) -> Dict[str, str]:
        return {
            "latitude": f"{lat:.4f}",
            "longitude": f"{lng:.4f}",
            "current": CURRENT_FIELDS,
            "timezone": "auto",
        }

    async def fetch(self, lat: float, lng: float) -> WeatherRecord:
        self.calls += 1
        try:
            response = await self.client.get(
                self.base_url,
                params=self._params(lat, lng),
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout_s,
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"weather request failed: {exc!r}", lat=lat, lng=lng) from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise ProviderError(
                f"weather provider returned HTTP {response.status_code}", lat=lat, lng=lng
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError("weather provider returned invalid JSON", lat=lat, lng=lng) from exc

        return self.parse(payload, lat, lng)

    def parse(self, payload: Any, lat: float, lng: float) -> WeatherRecord:
        current: Optional[Dict[str, Any]] = None
        if isinstance(payload, dict):
            current = payload.get("current")
        if not isinstance(current, dict):
            raise ProviderError("invalid API response structure", lat=lat, lng=lng)

        temperature = _as_number(current.get("temperature_2m"), DEFAULT_TEMPERATURE)
        humidity = _as_number(current.get("relative_humidity_2m"), DEFAULT_HUMIDITY)
        code = int(_as_number(current.get("weather_code"), DEFAULT_WEATHER_CODE))
        return WeatherRecord(
            latitude=round_coord(lat),
            longitude=round_coord(lng),
            temperature=_round_half_up(temperature),
            humidity=_round_half_up(humidity),
            weather_code=code,
            condition=condition_for_code(code),
            last_updated=utc_now(),
        )

    async def fetch_or_default(self, lat: float, lng: float) -> WeatherRecord:
        try:
            return await self.fetch(lat, lng)
        except ProviderError as exc:
            self.failures += 1
            logger.warning("weather provider failed for %.4f,%.4f: %s", lat, lng, exc)
            return default_weather(lat, lng)

    def stats(self) -> Dict[str, int]:
        return {"calls": self.calls, "failures": self.failures}
