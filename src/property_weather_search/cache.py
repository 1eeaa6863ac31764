from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from property_weather_search.errors import CacheUnavailable


logger = logging.getLogger("pws.cache")


class MemoryCache:
    """In-process key-value cache with per-entry TTL.

    Values are stored as-is (no serialization). When full, the entry with the
    earliest expiry is evicted. Disabled caches miss on every read and drop
    every write.
    """

    backend = "memory"

    def __init__(
        self,
        max_entries: int = 10000,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.max_entries = max(1, int(max_entries))
        self.enabled = enabled
        self._clock = clock
        self._entries: Dict[str, tuple] = {}
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    def _live_entry(self, key: str):
        entry = self._entries.get(key)
        if not entry:
            return None
        expires_at, _ = entry
        if expires_at is not None and expires_at < self._clock():
            self._entries.pop(key, None)
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            self._stats["misses"] += 1
            return None
        entry = self._live_entry(key)
        if entry is None:
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return entry[1]

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if not self.enabled:
            return
        if key not in self._entries and len(self._entries) >= self.max_entries:
            oldest_key = min(
                self._entries.items(),
                key=lambda item: float("inf") if item[1][0] is None else item[1][0],
            )[0]
            self._entries.pop(oldest_key, None)
            self._stats["evictions"] += 1
        expires_at = None if ttl is None else self._clock() + ttl
        self._entries[key] = (expires_at, value)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def exists(self, key: str) -> bool:
        if not self.enabled:
            return False
        return self._live_entry(key) is not None

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for k in doomed:
            self._entries.pop(k, None)
        return len(doomed)

    async def count_prefix(self, prefix: str) -> int:
        return sum(1 for k in list(self._entries) if k.startswith(prefix) and self._live_entry(k))

    async def clear(self) -> None:
        self._entries.clear()
        self._stats["hits"] = 0
        self._stats["misses"] = 0
        self._stats["evictions"] = 0

    async def ping(self) -> bool:
        return True

    def stats(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "enabled": self.enabled,
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            **self._stats,
        }

    async def close(self) -> None:
        return None


class RedisCache:
    """Redis-backed key-value cache. Values are JSON encoded.

    Every backend failure is re-raised as CacheUnavailable so callers can
    fall back to direct computation.
    """

    backend = "redis"

    def __init__(self, client: "redis.Redis", prefix: str = "pws:"):
        self.client = client
        self.prefix = prefix
        self._stats = {"hits": 0, "misses": 0, "errors": 0}

    @classmethod
    def from_url(cls, url: str, prefix: str = "pws:") -> "RedisCache":
        client = redis.from_url(
            url,
            socket_connect_timeout=5,
            socket_timeout=5,
            decode_responses=True,
        )
        return cls(client, prefix=prefix)

    def _k(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _fail(self, op: str, key: str, exc: Exception) -> CacheUnavailable:
        self._stats["errors"] += 1
        return CacheUnavailable(f"redis {op} failed for {key}: {exc}")

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(self._k(key))
        except RedisError as exc:
            raise self._fail("get", key, exc) from exc
        if raw is None:
            self._stats["misses"] += 1
            return None
        try:
            value = json.loads(raw)
        except ValueError as exc:
            # Unreadable values count as misses and are dropped.
            logger.warning("discarding undecodable redis value for %s: %s", key, exc)
            self._stats["misses"] += 1
            await self.delete(key)
            return None
        self._stats["hits"] += 1
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        payload = json.dumps(value, separators=(",", ":"), default=str)
        try:
            if ttl is None:
                await self.client.set(self._k(key), payload)
            else:
                await self.client.set(self._k(key), payload, ex=int(ttl))
        except RedisError as exc:
            raise self._fail("set", key, exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(self._k(key))
        except RedisError as exc:
            raise self._fail("delete", key, exc) from exc

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self.client.exists(self._k(key)))
        except RedisError as exc:
            raise self._fail("exists", key, exc) from exc

    async def _scan(self, prefix: str):
        async for k in self.client.scan_iter(match=f"{self._k(prefix)}*", count=500):
            yield k

    async def delete_prefix(self, prefix: str) -> int:
        removed = 0
        try:
            async for k in self._scan(prefix):
                removed += int(await self.client.delete(k))
        except RedisError as exc:
            raise self._fail("delete_prefix", prefix, exc) from exc
        return removed

    async def count_prefix(self, prefix: str) -> int:
        n = 0
        try:
            async for _ in self._scan(prefix):
                n += 1
        except RedisError as exc:
            raise self._fail("count_prefix", prefix, exc) from exc
        return n

    async def clear(self) -> None:
        await self.delete_prefix("")

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as exc:
            logger.warning("redis ping failed: %s", exc)
            return False

    def stats(self) -> Dict[str, Any]:
        return {"backend": self.backend, "prefix": self.prefix, **self._stats}

    async def close(self) -> None:
        await self.client.aclose()


def build_cache(settings) -> "MemoryCache | RedisCache":
    if settings.redis_url:
        logger.info("using redis cache backend")
        return RedisCache.from_url(settings.redis_url)
    return MemoryCache(
        max_entries=settings.cache_max_entries,
        enabled=settings.cache_enabled,
    )
