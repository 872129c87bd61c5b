from __future__ import annotations

import logging
from typing import Any, List

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..settings import get_settings

logger = logging.getLogger(__name__)


class RedisCrudService:
    """Async key, list and counter operations against a Redis instance."""

    def __init__(self, url: str) -> None:
        """Create a Redis client for the given URL (e.g. redis://localhost:6379/0)."""
        self._url = url
        self._client: Redis[Any] | None = None

    async def connect(self) -> None:
        """Establish connection to Redis. Idempotent."""
        if self._client is not None:
            return
        self._client = Redis.from_url(
            self._url,
            decode_responses=True,
        )
        try:
            await self._client.ping()
            logger.info("Redis connection established: %s", self._url.split("@")[-1])
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis ping failed: %s", e)
            await self._client.aclose()
            self._client = None
            raise

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Redis connection closed")

    @property
    def client(self) -> Redis[Any] | None:
        """Return the underlying Redis client, or None if not connected."""
        return self._client

    async def get(self, key: str) -> str | None:
        """Return the value for key, or None if missing or on error."""
        if self._client is None:
            return None
        try:
            value = await self._client.get(key)
            return value if value is None else str(value)
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis get %s failed: %s", key, e)
            return None

    async def set(
        self,
        key: str,
        value: str,
        ttl_seconds: int | None = None,
    ) -> bool:
        """Set key to value. If ttl_seconds is set, the key will expire. Returns True on success."""
        if self._client is None:
            return False
        try:
            if ttl_seconds is not None and ttl_seconds > 0:
                await self._client.setex(key, ttl_seconds, value)
            else:
                await self._client.set(key, value)
            return True
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis set %s failed: %s", key, e)
            return False

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set (or refresh) the key's time to live. Returns True on success."""
        if self._client is None:
            return False
        try:
            await self._client.expire(key, ttl_seconds)
            return True
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis expire %s failed: %s", key, e)
            return False

    async def rpush(self, key: str, value: str) -> bool:
        """Append value to the list at key. Returns True on success."""
        if self._client is None:
            return False
        try:
            await self._client.rpush(key, value)
            return True
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis rpush %s failed: %s", key, e)
            return False

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        """Return list items between start and end (inclusive), or [] on error."""
        if self._client is None:
            return []
        try:
            values = await self._client.lrange(key, start, end)
            return [str(v) for v in values]
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis lrange %s failed: %s", key, e)
            return []

    async def incr_window(self, key: str, window_seconds: int) -> int | None:
        """Increment a fixed-window counter, starting its expiry on first hit.

        Returns the new count, or None if Redis is unavailable.
        """
        if self._client is None:
            return None
        try:
            count = int(await self._client.incr(key))
            if count == 1:
                await self._client.expire(key, window_seconds)
            return count
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis incr %s failed: %s", key, e)
            return None


def get_redis_crud_service() -> RedisCrudService | None:
    """Return a Redis CRUD service if redis_url is configured, else None."""
    settings = get_settings()
    if not settings.redis_url or not settings.redis_url.strip():
        return None
    return RedisCrudService(settings.redis_url.strip())
