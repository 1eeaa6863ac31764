from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


DEFAULT_WEATHER_API_URL = "https://api.open-meteo.com/v1/forecast"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    v = str(raw).strip().lower()
    if v in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = raw.strip()
    return raw or default


@dataclass(frozen=True)
class Settings:
    """Process configuration read from the environment.

    Every field has a default so the service runs with no env at all
    (in-memory cache, local SQLite file, public Open-Meteo endpoint).
    """

    db_path: str
    redis_url: Optional[str]
    cache_enabled: bool
    cache_max_entries: int
    snapshot_ttl_s: int
    weather_ttl_s: int
    weather_api_url: str
    weather_timeout_s: float
    weather_batch_size: int
    weather_batch_delay_ms: int
    weather_refresh_interval_s: int
    app_env: str
    log_level: str
    cors_origin: str

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=_env_str("PWS_DB_PATH", "./properties.sqlite") or "./properties.sqlite",
            redis_url=_env_str("REDIS_URL", None),
            cache_enabled=_env_bool("CACHE", True),
            cache_max_entries=max(1, _env_int("CACHE_MAX_ENTRIES", 10000)),
            snapshot_ttl_s=max(1, _env_int("SNAPSHOT_TTL_S", 3600)),
            weather_ttl_s=max(1, _env_int("WEATHER_TTL_S", 1800)),
            weather_api_url=_env_str("WEATHER_API_URL", DEFAULT_WEATHER_API_URL)
            or DEFAULT_WEATHER_API_URL,
            weather_timeout_s=max(0.1, _env_float("WEATHER_TIMEOUT_S", 5.0)),
            weather_batch_size=max(1, _env_int("WEATHER_BATCH_SIZE", 10)),
            weather_batch_delay_ms=max(0, _env_int("WEATHER_BATCH_DELAY_MS", 100)),
            weather_refresh_interval_s=max(0, _env_int("WEATHER_REFRESH_INTERVAL_S", 0)),
            app_env=(_env_str("APP_ENV", "production") or "production").lower(),
            log_level=(_env_str("LOG_LEVEL", "INFO") or "INFO").upper(),
            cors_origin=_env_str("CORS_ORIGIN", "*") or "*",
        )

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def reset_settings_cache() -> None:
    """Test helper to force env re-read."""

    get_settings.cache_clear()
