from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from property_weather_search.errors import PropertySearchError
from property_weather_search.metrics import SearchMetrics
from property_weather_search.models import (
    PropertyRecord,
    PropertyWithWeather,
    SearchFilters,
    SearchResult,
    WeatherRecord,
)
from property_weather_search.weather.batcher import Coordinate


logger = logging.getLogger("pws.search")

SUGGESTION_LIMIT = 10
SUGGESTION_MIN_CHARS = 2


def _contains(haystack: str, needle: Optional[str]) -> bool:
    if not needle:
        return True
    return needle.lower() in (haystack or "").lower()


def matches_structural(record: PropertyRecord, filters: SearchFilters) -> bool:
    return (
        _contains(record.name, filters.search_text)
        and _contains(record.city, filters.city)
        and _contains(record.state, filters.state)
    )


def matches_weather(weather: Optional[WeatherRecord], filters: SearchFilters) -> bool:
    if weather is None:
        return not filters.has_weather_filters
    if filters.temp_min is not None and weather.temperature < filters.temp_min:
        return False
    if filters.temp_max is not None and weather.temperature > filters.temp_max:
        return False
    if filters.humidity_min is not None and weather.humidity < filters.humidity_min:
        return False
    if filters.humidity_max is not None and weather.humidity > filters.humidity_max:
        return False
    if filters.weather_condition and weather.condition != filters.weather_condition:
        return False
    return True


class SearchEngine:
    """Structural filter -> (enrich -> weather filter) -> paginate.

    Without weather filters only the requested page is enriched. With weather
    filters every structurally matching record that has coordinates is
    enriched before filtering, so `total` and `has_more` count the whole
    filtered set rather than the page.
    """

    def __init__(self, snapshots, batcher, metrics: Optional[SearchMetrics] = None):
        self.snapshots = snapshots
        self.batcher = batcher
        self.metrics = metrics or SearchMetrics()

    async def enrich(self, records: Sequence[PropertyRecord]) -> List[PropertyWithWeather]:
        coords = [
            Coordinate(property_id=r.id, lat=float(r.lat), lng=float(r.lng))
            for r in records
            if r.has_coordinates
        ]
        fetched = iter(await self.batcher.fetch_batch(coords))
        out: List[PropertyWithWeather] = []
        for record in records:
            if record.has_coordinates:
                out.append(PropertyWithWeather(record, next(fetched)))
            else:
                out.append(PropertyWithWeather(record, None))
        return out

    async def search(self, filters: SearchFilters) -> SearchResult:
        started = time.perf_counter()
        try:
            result = await self._search(filters, started)
        except PropertySearchError:
            self.metrics.record_error()
            raise
        self.metrics.record_search(result.search_time_ms, weather_filtered=result.weather_filtered)
        logger.info(
            "search total=%s returned=%s offset=%s weather_filtered=%s in %.1fms",
            result.total,
            len(result.items),
            result.offset,
            result.weather_filtered,
            result.search_time_ms,
        )
        return result

    async def _search(self, filters: SearchFilters, started: float) -> SearchResult:
        snapshot = await self.snapshots.get()
        matched = [r for r in snapshot.records if matches_structural(r, filters)]
        logger.debug("structural filters kept %s of %s records", len(matched), len(snapshot.records))

        offset, limit = filters.offset, filters.limit
        weather_filtered = filters.has_weather_filters
        if weather_filtered:
            # Records without coordinates can never satisfy a weather filter.
            located = [r for r in matched if r.has_coordinates]
            enriched = await self.enrich(located)
            kept = [item for item in enriched if matches_weather(item.weather, filters)]
            total = len(kept)
            page = kept[offset : offset + limit]
        else:
            total = len(matched)
            page = await self.enrich(matched[offset : offset + limit])

        return SearchResult(
            items=page,
            total=total,
            has_more=offset + len(page) < total,
            limit=limit,
            offset=offset,
            search_time_ms=round((time.perf_counter() - started) * 1000, 3),
            source=f"snapshot:{snapshot.source}",
            snapshot_version=snapshot.version,
            weather_filtered=weather_filtered,
        )

    async def suggest(self, q: Optional[str], limit: int = SUGGESTION_LIMIT) -> List[Dict[str, Any]]:
        text = (q or "").strip()
        if len(text) < SUGGESTION_MIN_CHARS:
            return []
        snapshot = await self.snapshots.get()
        needle = text.lower()
        out: List[Dict[str, Any]] = []
        for record in snapshot.records:
            if needle not in (record.name or "").lower():
                continue
            label = ", ".join(p for p in (record.name, record.city, record.state) if p)
            out.append(
                {
                    "id": record.id,
                    "label": label,
                    "value": record.name,
                    "city": record.city,
                    "state": record.state,
                }
            )
            if len(out) >= limit:
                break
        return out

