from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from property_weather_search.cache import MemoryCache, RedisCache, build_cache
from property_weather_search.metrics import SearchMetrics
from property_weather_search.search.engine import SearchEngine
from property_weather_search.settings import Settings, get_settings
from property_weather_search.snapshot import PropertySnapshotCache
from property_weather_search.storage import PropertyStore
from property_weather_search.weather.batcher import WeatherBatcher
from property_weather_search.weather.cache import WeatherRecordCache
from property_weather_search.weather.fetcher import WeatherFetcher
from property_weather_search.weather.refresh import WeatherRefresher


logger = logging.getLogger("pws.startup")


@dataclass
class Services:
    """Everything a request handler or CLI command needs, wired once."""

    settings: Settings
    store: PropertyStore
    cache: "MemoryCache | RedisCache"
    http: httpx.AsyncClient
    fetcher: WeatherFetcher
    weather_cache: WeatherRecordCache
    batcher: WeatherBatcher
    snapshots: PropertySnapshotCache
    engine: SearchEngine
    refresher: WeatherRefresher
    metrics: SearchMetrics

    async def aclose(self) -> None:
        await self.http.aclose()
        await self.cache.close()


def build_services(
    settings: Optional[Settings] = None,
    *,
    store: Optional[PropertyStore] = None,
    cache=None,
    http: Optional[httpx.AsyncClient] = None,
) -> Services:
    """Wire the object graph. Tests pass their own store, cache or client."""

    settings = settings or get_settings()
    store = store or PropertyStore(settings.db_path)
    cache = cache if cache is not None else build_cache(settings)
    http = http or httpx.AsyncClient(timeout=settings.weather_timeout_s)

    fetcher = WeatherFetcher(
        http,
        base_url=settings.weather_api_url,
        timeout_s=settings.weather_timeout_s,
    )
    weather_cache = WeatherRecordCache(
        cache, fetch=fetcher.fetch_or_default, ttl_s=settings.weather_ttl_s
    )
    batcher = WeatherBatcher(
        weather_cache.get_or_fetch,
        batch_size=settings.weather_batch_size,
        delay_s=settings.weather_batch_delay_ms / 1000.0,
    )
    # Only a cross-process backend is worth publishing the snapshot to.
    shared = cache if isinstance(cache, RedisCache) else None
    snapshots = PropertySnapshotCache(store, ttl_s=settings.snapshot_ttl_s, shared=shared)
    metrics = SearchMetrics()
    engine = SearchEngine(snapshots, batcher, metrics=metrics)
    refresher = WeatherRefresher(snapshots, fetcher, batcher, weather_cache)

    logger.info(
        "services ready: db=%s cache=%s batch_size=%s delay_ms=%s",
        settings.db_path,
        getattr(cache, "backend", type(cache).__name__),
        settings.weather_batch_size,
        settings.weather_batch_delay_ms,
    )
    return Services(
        settings=settings,
        store=store,
        cache=cache,
        http=http,
        fetcher=fetcher,
        weather_cache=weather_cache,
        batcher=batcher,
        snapshots=snapshots,
        engine=engine,
        refresher=refresher,
        metrics=metrics,
    )
