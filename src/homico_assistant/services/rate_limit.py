import logging
import time
from typing import Dict, Tuple

from ..settings import Settings, get_settings
from .redis import RedisCrudService

logger = logging.getLogger(__name__)

RATE_LIMIT_KEY_PREFIX = "ratelimit:"


class RateLimitExceededError(Exception):
    """Caller made too many requests in the current window for a scope."""

    def __init__(self, scope: str, limit: int, retry_after: int) -> None:
        super().__init__(f"Rate limit exceeded for {scope}: {limit} requests per window")
        self.scope = scope
        self.limit = limit
        self.retry_after = retry_after


class RateLimiter:
    """Fixed-window request counters per (scope, caller).

    Counters live in Redis (INCR + EXPIRE) when a connected service is given,
    otherwise in process memory. A Redis error is logged and lets the request through.
    """

    def __init__(
        self, redis_crud: RedisCrudService | None = None, settings: Settings | None = None
    ) -> None:
        self._redis = redis_crud
        settings = settings or get_settings()
        self._window = settings.rate_limit_window_seconds
        self._limits: Dict[str, int] = {
            "sessions": settings.session_rate_limit,
            "messages": settings.message_rate_limit,
            "api": settings.api_rate_limit,
        }
        self._local: Dict[str, Tuple[float, int]] = {}
        self._last_prune = time.monotonic()

    def limit_for(self, scope: str) -> int:
        return self._limits.get(scope, self._limits["api"])

    def _prune(self, now: float) -> None:
        """Drop in-process windows that have ended; runs at most once per window."""
        if now - self._last_prune < self._window:
            return
        self._last_prune = now
        expired = [key for key, (started, _) in self._local.items() if now - started >= self._window]
        for key in expired:
            del self._local[key]

    async def _increment(self, key: str) -> int | None:
        if self._redis is not None and self._redis.client is not None:
            return await self._redis.incr_window(key, self._window)
        now = time.monotonic()
        self._prune(now)
        started, count = self._local.get(key, (now, 0))
        if now - started >= self._window:
            started, count = now, 0
        self._local[key] = (started, count + 1)
        return count + 1

    async def hit(self, scope: str, caller: str) -> int:
        """Count one request; raise RateLimitExceededError past the scope's limit."""
        limit = self.limit_for(scope)
        key = f"{RATE_LIMIT_KEY_PREFIX}{scope}:{caller}"
        count = await self._increment(key)
        if count is None:
            logger.warning("Rate limit counter unavailable for %s; allowing request", key)
            return 0
        if count > limit:
            logger.info("Rate limit hit scope=%s caller=%s count=%d", scope, caller, count)
            raise RateLimitExceededError(scope, limit, retry_after=self._window)
        return count

    def reset(self) -> None:
        self._local.clear()
