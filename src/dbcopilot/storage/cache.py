"""Key/value cache with TTL for schemas and pending credentials.

Values are JSON-serializable; both backends store them as JSON so the
in-memory and Redis caches behave the same.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class SchemaCache(ABC):
    """Async cache interface used by the manager."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are ignored."""
        pass

    async def close(self) -> None:
        pass


class MemoryCache(SchemaCache):
    """Process-local cache; entries expire on read."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, tuple[float, str]] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        expires_at, payload = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None

        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        self._entries[key] = (self._clock() + ttl, json.dumps(value))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class RedisCache(SchemaCache):
    """Redis-backed cache using ``SET ... EX``."""

    def __init__(self, url: str, client: Optional[redis.Redis] = None):
        """Initialize Redis cache.

        Args:
            url: Redis URL, e.g. redis://localhost:6379/0
            client: Existing client (tests)
        """
        self.url = url
        self._client = client or redis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[Any]:
        try:
            payload = await self._client.get(key)
        except redis.RedisError as e:
            logger.error(f"Error retrieving cached value for {key}: {e}")
            raise

        if payload is None:
            return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self._client.set(key, json.dumps(value), ex=ttl)
        except redis.RedisError as e:
            logger.error(f"Error caching value for {key}: {e}")
            raise

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except redis.RedisError as e:
            logger.error(f"Error clearing cached value for {key}: {e}")
            raise

    async def close(self) -> None:
        await self._client.aclose()


def create_cache(redis_url: Optional[str] = None) -> SchemaCache:
    """Return a RedisCache when a URL is configured, else a MemoryCache."""
    if redis_url:
        logger.info("Using Redis schema cache")
        return RedisCache(redis_url)
    return MemoryCache()
