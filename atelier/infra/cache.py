import asyncio
import fnmatch
import logging
import time
from typing import Dict, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger("atelier.response_cache")

KEY_PREFIX = "response-cache:"


class ResponseCache(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    async def invalidate(self, pattern: str) -> int: ...

    async def reset(self) -> None: ...

    async def close(self) -> None: ...


class NullResponseCache:
    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        return None

    async def invalidate(self, pattern: str) -> int:
        return 0

    async def reset(self) -> None:
        return None

    async def close(self) -> None:
        return None


class InMemoryResponseCache:
    def __init__(self, ttl_seconds: int = 600) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, tuple[float, str]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= time.monotonic():
                self._entries.pop(key, None)
                return None
            return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return
        async with self._lock:
            self._entries[key] = (time.monotonic() + ttl, value)

    async def invalidate(self, pattern: str) -> int:
        async with self._lock:
            matched = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
            for key in matched:
                self._entries.pop(key, None)
        return len(matched)

    async def reset(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def close(self) -> None:
        return None


class RedisResponseCache:
    def __init__(
        self,
        redis_url: str,
        ttl_seconds: int = 600,
        redis_client: redis.Redis | None = None,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.redis = redis_client or redis.from_url(redis_url, encoding="utf-8", decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{KEY_PREFIX}{key}"

    async def get(self, key: str) -> str | None:
        try:
            return await self.redis.get(self._key(key))
        except RedisError:
            logger.warning("response_cache_get_failed", extra={"extra": {"key": key}})
            return None

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return
        try:
            await self.redis.set(self._key(key), value, ex=ttl)
        except RedisError:
            logger.warning("response_cache_set_failed", extra={"extra": {"key": key}})

    async def invalidate(self, pattern: str) -> int:
        # Unlike get/set, Redis errors propagate here.
        removed = 0
        keys: list[str] = []
        async for key in self.redis.scan_iter(match=self._key(pattern), count=100):
            keys.append(key)
            if len(keys) >= 100:
                removed += await self.redis.delete(*keys)
                keys = []
        if keys:
            removed += await self.redis.delete(*keys)
        return removed

    async def reset(self) -> None:
        await self.invalidate("*")

    async def close(self) -> None:
        try:
            await self.redis.aclose()
        except RedisError:
            logger.warning("response_cache_close_failed")


def create_response_cache(app_settings) -> ResponseCache:
    backend = getattr(app_settings, "cache_backend", "memory")
    if backend == "off":
        return NullResponseCache()
    if backend == "redis":
        if not app_settings.redis_url:
            raise RuntimeError("CACHE_BACKEND=redis requires REDIS_URL")
        return RedisResponseCache(app_settings.redis_url, ttl_seconds=app_settings.cache_ttl_seconds)
    return InMemoryResponseCache(ttl_seconds=app_settings.cache_ttl_seconds)
