# =============================================================================
# Tool Result Cache — Injected, TTL-Bounded
# =============================================================================
#
# Market-data tools cache upstream payloads keyed by tool name plus the
# domain identifier (usually the upper-cased symbol). The cache is an
# injected service: tools receive it in their constructor, so tests and
# separate advisor instances never share hidden module-level state.
#
# Semantics shared by both backends:
#   - get() returns the payload while younger than ttl_seconds, else None
#   - set() overwrites (last write wins); writes are idempotent
#   - the in-memory backend sweeps expired entries on every set(), so
#     keys that are never read again do not accumulate
#   - no cross-key transactions
#
# DESIGN DECISION: Graceful degradation for Redis. A Redis outage turns
# every lookup into a miss (logged as a warning) rather than failing the
# tool, the same trade-off the request rate limiter makes.
#
#   ToolCache (Protocol)
#   ├── InMemoryToolCache — dict + timestamps, explicit evict_expired()
#   ├── RedisToolCache    — JSON values with SETEX, shared across processes
#   └── get_tool_cache()  — process-wide factory reading cache_backend
# =============================================================================

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

from advisor.config import settings

logger = logging.getLogger(__name__)


class ToolCache(Protocol):
    """Async key/value cache for JSON-shaped tool payloads."""

    async def get(self, key: str) -> dict[str, Any] | None:
        ...

    async def set(self, key: str, payload: dict[str, Any]) -> None:
        ...


def make_cache_key(tool_name: str, *parts: str) -> str:
    """Build a cache key from a tool name and its domain identifiers."""
    normalised = [str(part).strip().upper() for part in parts if part]
    return ":".join([tool_name, *normalised])


class InMemoryToolCache:
    """
    Per-process cache with time-based expiry.

    The clock is injectable so tests can advance time without sleeping.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[dict[str, Any], float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> dict[str, Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        payload, stored_at = entry
        if self._clock() - stored_at >= self._ttl:
            del self._entries[key]
            return None
        logger.debug("Cache hit: %s", key)
        return dict(payload)

    async def set(self, key: str, payload: dict[str, Any]) -> None:
        self.evict_expired()
        self._entries[key] = (dict(payload), self._clock())

    def evict_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [
            key for key, (_, stored_at) in self._entries.items()
            if now - stored_at >= self._ttl
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Evicted %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()


class RedisToolCache:
    """
    Redis-backed cache shared by every worker process.

    Values are stored as JSON strings with SETEX so Redis handles expiry.
    """

    def __init__(
        self,
        url: str | None = None,
        ttl_seconds: int | None = None,
        client=None,
    ) -> None:
        self._url = url or settings.redis_url
        self._ttl = int(ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds)
        self._client = client

    def _get_client(self):
        """Lazily create and cache the async Redis client."""
        if self._client is None:
            import redis.asyncio as aioredis
            self._client = aioredis.from_url(self._url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            raw = await self._get_client().get(f"toolcache:{key}")
        except Exception as e:
            logger.warning("Tool cache unavailable (Redis error): %s. Treating as miss.", e)
            return None
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable cache entry for %s", key)
            return None
        logger.debug("Cache hit: %s", key)
        return payload if isinstance(payload, dict) else None

    async def set(self, key: str, payload: dict[str, Any]) -> None:
        try:
            await self._get_client().setex(
                f"toolcache:{key}", self._ttl, json.dumps(payload, default=str),
            )
        except Exception as e:
            logger.warning("Tool cache write skipped (Redis error): %s", e)


_cache: InMemoryToolCache | RedisToolCache | None = None


def get_tool_cache() -> InMemoryToolCache | RedisToolCache:
    """
    Return the process-wide tool cache selected by `cache_backend`.

    Advisors built without an explicit cache share this instance, so
    concurrent queries reuse each other's recent market data.
    """
    global _cache
    if _cache is None:
        if settings.cache_backend == "redis":
            _cache = RedisToolCache()
        else:
            _cache = InMemoryToolCache()
        logger.info("Tool cache backend: %s", settings.cache_backend)
    return _cache
