"""Alias resolution with a short-lived in-process cache.

Only successful lookups are cached, so a newly created endpoint is reachable
on its first call. The flip side is that deactivating or editing an endpoint
takes up to the cache TTL to reach repeater traffic. That staleness window is
the accepted price for skipping a store round trip on every request.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from bridge_hub.db.time import utcnow
from bridge_hub.services.store import EndpointConfig, Store

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60.0
DEFAULT_MAX_ENTRIES = 10_000


@dataclass(frozen=True)
class _CacheEntry:
    endpoint: EndpointConfig
    expires_at: float


class AliasCache:
    """Per-alias TTL cache for resolved endpoints.

    The cache is only touched from the event loop, so a plain dict is enough.
    When full, the oldest inserted alias is evicted first.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = max(0.0, float(ttl_seconds))
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, alias: str) -> EndpointConfig | None:
        """Return the cached endpoint, or None on a miss or expiry."""
        entry = self._entries.get(alias)
        if entry is None:
            self.misses += 1
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(alias, None)
            self.misses += 1
            return None
        self.hits += 1
        return entry.endpoint

    def put(self, alias: str, endpoint: EndpointConfig) -> None:
        """Cache `endpoint` under `alias` for one TTL."""
        if self.ttl_seconds <= 0:
            return
        self._entries.pop(alias, None)
        while len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[alias] = _CacheEntry(endpoint, self._clock() + self.ttl_seconds)

    def invalidate(self, alias: str) -> None:
        """Drop a single alias so the next lookup hits the store."""
        self._entries.pop(alias, None)

    def clear(self) -> None:
        """Drop every cached alias."""
        self._entries.clear()


class EndpointDirectory:
    """Resolves public aliases to active endpoint configurations."""

    def __init__(self, store: Store, cache: AliasCache | None = None) -> None:
        self._store = store
        self.cache = cache if cache is not None else AliasCache()

    async def resolve(self, alias: str) -> EndpointConfig | None:
        """Return the active endpoint for `alias`, or None.

        Missing and inactive aliases are deliberately indistinguishable.
        """
        cached = self.cache.get(alias)
        if cached is not None:
            return cached

        endpoint = await self._store.get_active_endpoint_by_alias(alias)
        if endpoint is None or not endpoint.is_active:
            return None

        self.cache.put(alias, endpoint)
        return endpoint

    async def touch_last_used(self, endpoint_id: str) -> None:
        """Record that the endpoint was just called. Failures are only logged."""
        try:
            await self._store.update_endpoint_last_used(endpoint_id, utcnow())
        except Exception as exc:
            logger.warning("Failed to update last_used_at for endpoint %s: %s", endpoint_id, exc)
