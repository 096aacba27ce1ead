"""Rate-limit gate applied to repeater traffic before the pipeline runs.

Two fixed-window backends share one interface: an in-process counter for
single-instance deployments and tests, and Redis when `REDIS_URL` is set so
several workers share the same budget.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

import redis.asyncio as aioredis

from bridge_hub.core.settings import Settings, settings

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60
RATE_LIMIT_MESSAGE = "Too many requests to this endpoint."
MAX_TRACKED_KEYS = 10_000


class RateLimitGate(Protocol):
    """Decides whether a caller may proceed."""

    async def allow(self, key: str) -> bool: ...

    async def close(self) -> None: ...


class InMemoryRateLimiter:
    """Fixed-window counter keyed by caller identity.

    Only touched from the event loop.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int = WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, list[int]] = {}

    async def allow(self, key: str) -> bool:
        window = int(self._clock() // self.window_seconds)
        bucket = self._windows.get(key)
        if bucket is None or bucket[0] != window:
            if len(self._windows) > MAX_TRACKED_KEYS:
                self._prune(window)
            bucket = [window, 0]
            self._windows[key] = bucket
        bucket[1] += 1
        return bucket[1] <= self.limit

    def _prune(self, window: int) -> None:
        for stale in [k for k, (w, _) in self._windows.items() if w != window]:
            del self._windows[stale]

    async def close(self) -> None:
        self._windows.clear()


class RedisRateLimiter:
    """Fixed-window counter stored in Redis (`INCR` + `EXPIRE`).

    If Redis is unreachable the gate fails open: forwarding matters more than
    throttling.
    """

    def __init__(
        self,
        client: Any,
        limit: int,
        window_seconds: int = WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = client
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock

    async def allow(self, key: str) -> bool:
        window = int(self._clock() // self.window_seconds)
        redis_key = f"ratelimit:repeater:{key}:{window}"
        try:
            count = await self._redis.incr(redis_key)
            if count == 1:
                await self._redis.expire(redis_key, self.window_seconds)
        except aioredis.RedisError as exc:
            logger.warning("Rate limiter unavailable, allowing request: %s", exc)
            return True
        return int(count) <= self.limit

    async def close(self) -> None:
        await self._redis.aclose()


def build_rate_limiter(config: Settings | None = None) -> RateLimitGate | None:
    """Return the configured gate, or None when rate limiting is disabled."""
    config = config or settings
    limit = int(config.repeater_rate_limit_per_minute)
    if limit <= 0:
        return None
    if config.redis_url:
        return RedisRateLimiter(aioredis.from_url(config.redis_url), limit)
    return InMemoryRateLimiter(limit)
