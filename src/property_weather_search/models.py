from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


WEATHER_CONDITIONS: Tuple[str, ...] = ("Clear", "Cloudy", "Drizzle", "Rainy", "Snow")

TEMPERATURE_RANGE = (-20, 50)
HUMIDITY_RANGE = (0, 100)

COORD_PRECISION = 4

DEFAULT_TEMPERATURE = 25
DEFAULT_HUMIDITY = 60
DEFAULT_WEATHER_CODE = 0
DEFAULT_CONDITION = "Clear"


def round_coord(value: float) -> float:
    return round(float(value), COORD_PRECISION)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PropertyRecord:
    id: int
    name: str
    city: str = ""
    state: str = ""
    country: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    is_active: bool = True
    tags: Tuple[str, ...] = ()
    created_at: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        # Rows store 0 for unknown coordinates, so 0 counts as missing.
        return bool(self.lat) and bool(self.lng)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "lat": self.lat,
            "lng": self.lng,
            "is_active": self.is_active,
            "tags": list(self.tags),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PropertyRecord":
        tags = data.get("tags") or ()
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            city=str(data.get("city") or ""),
            state=str(data.get("state") or ""),
            country=str(data.get("country") or ""),
            lat=_opt_float(data.get("lat")),
            lng=_opt_float(data.get("lng")),
            is_active=bool(data.get("is_active", True)),
            tags=tuple(str(t) for t in tags if isinstance(t, str)),
            created_at=data.get("created_at"),
        )


@dataclass(frozen=True)
class WeatherRecord:
    latitude: float
    longitude: float
    temperature: int
    humidity: int
    weather_code: int
    condition: str
    last_updated: datetime
    is_default: bool = False

    @property
    def key(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "weather_code": self.weather_code,
            "condition": self.condition,
            "last_updated": self.last_updated.isoformat(),
            "is_default": self.is_default,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeatherRecord":
        last_updated = data.get("last_updated")
        if isinstance(last_updated, str):
            parsed = datetime.fromisoformat(last_updated)
        elif isinstance(last_updated, datetime):
            parsed = last_updated
        else:
            parsed = utc_now()
        return cls(
            latitude=round_coord(data["latitude"]),
            longitude=round_coord(data["longitude"]),
            temperature=int(data["temperature"]),
            humidity=int(data["humidity"]),
            weather_code=int(data.get("weather_code") or 0),
            condition=str(data.get("condition") or DEFAULT_CONDITION),
            last_updated=parsed,
            is_default=bool(data.get("is_default", False)),
        )


def default_weather(lat: float, lng: float) -> WeatherRecord:
    return WeatherRecord(
        latitude=round_coord(lat),
        longitude=round_coord(lng),
        temperature=DEFAULT_TEMPERATURE,
        humidity=DEFAULT_HUMIDITY,
        weather_code=DEFAULT_WEATHER_CODE,
        condition=DEFAULT_CONDITION,
        last_updated=utc_now(),
        is_default=True,
    )


@dataclass(frozen=True)
class SearchFilters:
    search_text: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None
    humidity_min: Optional[float] = None
    humidity_max: Optional[float] = None
    weather_condition: Optional[str] = None
    limit: int = 20
    offset: int = 0

    @property
    def has_weather_filters(self) -> bool:
        return (
            self.temp_min is not None
            or self.temp_max is not None
            or self.humidity_min is not None
            or self.humidity_max is not None
            or bool(self.weather_condition)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "searchText": self.search_text,
            "city": self.city,
            "state": self.state,
            "tempMin": self.temp_min,
            "tempMax": self.temp_max,
            "humidityMin": self.humidity_min,
            "humidityMax": self.humidity_max,
            "weatherCondition": self.weather_condition,
            "limit": self.limit,
            "offset": self.offset,
        }


@dataclass(frozen=True)
class PropertyWithWeather:
    property: PropertyRecord
    weather: Optional[WeatherRecord] = None


@dataclass
class SearchResult:
    items: List[PropertyWithWeather]
    total: int
    has_more: bool
    limit: int
    offset: int
    search_time_ms: float = 0.0
    source: str = "snapshot"
    snapshot_version: int = 0
    weather_filtered: bool = False


def _opt_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
