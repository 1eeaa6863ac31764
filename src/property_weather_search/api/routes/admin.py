from __future__ import annotations

import asyncio
import logging
import sqlite3
import time

from fastapi import APIRouter, Request

from property_weather_search import __version__
from property_weather_search.api.schemas import SyncResponse
from property_weather_search.errors import CacheUnavailable
from property_weather_search.models import utc_now


router = APIRouter(tags=["admin"])
logger = logging.getLogger("pws.api")

FEATURES = [
    "property search with structural and weather filters",
    "live weather from Open-Meteo",
    "weather record cache",
    "property snapshot cache",
    "autocomplete suggestions",
]


@router.get("/")
def banner():
    return {
        "message": "Property Weather Search API",
        "version": __version__,
        "features": FEATURES,
    }


@router.get("/health")
async def health(request: Request):
    services = request.app.state.services
    store_ok = await asyncio.to_thread(services.store.ping)
    cache_ok = await services.cache.ping()
    return {
        "status": "healthy" if store_ok and cache_ok else "degraded",
        "timestamp": utc_now().isoformat(),
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        "dependencies": {
            "store": "ok" if store_ok else "unavailable",
            "cache": "ok" if cache_ok else "unavailable",
        },
    }


@router.get("/metrics")
async def metrics(request: Request):
    services = request.app.state.services
    try:
        active = await asyncio.to_thread(services.store.count_properties)
    except sqlite3.Error as e:
        logger.warning("property count failed: %s", e)
        active = None
    weather = services.weather_cache.stats()
    weather["entries"] = await services.weather_cache.count()
    weather["provider"] = services.fetcher.stats()
    return {
        "success": True,
        "data": {
            "performance": services.metrics.snapshot(),
            "cache": {
                "snapshot": services.snapshots.stats(),
                "weather": weather,
                "backend": services.cache.stats(),
            },
            "properties": {"active": active},
        },
    }


async def _sync(request: Request, message: str) -> SyncResponse:
    services = request.app.state.services
    snapshot = await services.snapshots.refresh()
    logger.info("%s: %s records, snapshot v%s", message, len(snapshot.records), snapshot.version)
    return SyncResponse(message=message, count=len(snapshot.records), version=snapshot.version)


@router.post("/admin/sync-all", response_model=SyncResponse)
async def sync_all(request: Request):
    return await _sync(request, "Properties synced from store")


@router.post("/admin/sync-redis", response_model=SyncResponse)
async def sync_redis(request: Request):
    return await _sync(request, "Shared property cache synced")


@router.delete("/admin/clear-cache")
async def clear_cache(request: Request):
    services = request.app.state.services
    services.snapshots.invalidate()
    await services.snapshots.clear_shared()
    removed = await services.weather_cache.flush()
    try:
        await services.cache.clear()
    except CacheUnavailable as e:
        logger.warning("cache backend clear failed: %s", e)
        return {"success": False, "message": "Cache backend unavailable", "weatherEntries": removed}
    logger.info("caches cleared (%s weather entries)", removed)
    return {"success": True, "message": "All caches cleared", "weatherEntries": removed}
