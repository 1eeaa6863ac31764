from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from property_weather_search import __version__
from property_weather_search.api.routes.admin import router as admin_router
from property_weather_search.api.routes.search import router as search_router
from property_weather_search.errors import PropertySearchError, ValidationError
from property_weather_search.services import Services, build_services
from property_weather_search.settings import Settings, get_settings


logger = logging.getLogger("pws.api")


def _server_error(settings: Settings, exc: Exception) -> JSONResponse:
    message = str(exc) if settings.is_development else "Something went wrong"
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal Server Error", "message": message},
    )


def create_app(
    services: Optional[Services] = None, settings: Optional[Settings] = None
) -> FastAPI:
    """Build the FastAPI app.

    When `services` is omitted they are built on startup from `settings`
    (or the environment) and closed on shutdown.
    """

    settings = settings or (services.settings if services else get_settings())
    app = FastAPI(title="Property Weather Search", version=__version__)
    app.state.services = services
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(PropertySearchError)
    async def _search_error(request: Request, exc: PropertySearchError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _server_error(settings, exc)

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return _server_error(settings, exc)

    app.include_router(admin_router)
    app.include_router(search_router)

    _state = {"owned": False, "refresher": None}

    @app.on_event("startup")
    async def _start_services():
        if app.state.services is None:
            app.state.services = build_services(settings)
            _state["owned"] = True
        logger.warning(
            "startup env: APP_ENV=%s PWS_DB_PATH=%s REDIS_URL=%s",
            settings.app_env,
            settings.db_path,
            "set" if settings.redis_url else "",
        )

    @app.on_event("startup")
    async def _start_weather_refresher():
        interval_s = settings.weather_refresh_interval_s
        if interval_s <= 0:
            return
        refresher = app.state.services.refresher
        _state["refresher"] = asyncio.create_task(refresher.run_forever(interval_s))

    @app.on_event("shutdown")
    async def _stop_services():
        t = _state.get("refresher")
        if t is not None:
            t.cancel()
            try:
                await t
            except asyncio.CancelledError:
                pass
        if _state["owned"] and app.state.services is not None:
            await app.state.services.aclose()

    return app
