from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from property_weather_search.models import PropertyWithWeather, SearchResult, WeatherRecord


class WeatherOut(BaseModel):
    temperature: int
    humidity: int
    condition: str
    weatherCode: int
    lastUpdated: str
    isDefault: bool = False


class PropertyOut(BaseModel):
    """One search hit. Field names follow the JSON contract (camelCase)."""

    id: int
    name: str
    city: str = ""
    state: str = ""
    country: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    isActive: bool = True
    tags: List[str] = Field(default_factory=list)
    createdAt: Optional[str] = None
    weather: Optional[WeatherOut] = None


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    hasMore: bool


class SearchMeta(BaseModel):
    searchTime: str
    source: str
    snapshotVersion: int


class SearchResponse(BaseModel):
    success: bool = True
    data: List[PropertyOut]
    pagination: Pagination
    filters: Dict[str, Any]
    meta: SearchMeta


class Suggestion(BaseModel):
    id: int
    label: str
    value: str
    city: str = ""
    state: str = ""


class SuggestionsResponse(BaseModel):
    success: bool = True
    data: List[Suggestion]


class SyncResponse(BaseModel):
    success: bool = True
    message: str
    count: int
    version: int


def weather_out(weather: Optional[WeatherRecord]) -> Optional[WeatherOut]:
    if weather is None:
        return None
    return WeatherOut(
        temperature=weather.temperature,
        humidity=weather.humidity,
        condition=weather.condition,
        weatherCode=weather.weather_code,
        lastUpdated=weather.last_updated.isoformat(),
        isDefault=weather.is_default,
    )


def property_out(item: PropertyWithWeather) -> PropertyOut:
    record = item.property
    return PropertyOut(
        id=record.id,
        name=record.name,
        city=record.city,
        state=record.state,
        country=record.country,
        lat=record.lat,
        lng=record.lng,
        isActive=record.is_active,
        tags=list(record.tags),
        createdAt=record.created_at,
        weather=weather_out(item.weather),
    )


def search_response(result: SearchResult, filters: Dict[str, Any]) -> SearchResponse:
    return SearchResponse(
        data=[property_out(item) for item in result.items],
        pagination=Pagination(
            total=result.total,
            limit=result.limit,
            offset=result.offset,
            hasMore=result.has_more,
        ),
        filters=filters,
        meta=SearchMeta(
            searchTime=f"{result.search_time_ms:.1f}ms",
            source=result.source,
            snapshotVersion=result.snapshot_version,
        ),
    )
