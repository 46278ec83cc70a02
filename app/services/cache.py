"""
Result Caching Service

Two-tier read-through cache for expensive feed sources.

Tiers:
- RedisCache: shared networked store (redis.asyncio), JSON values,
  expiry handled by Redis (SET ... EX)
- LocalCache: in-process map with lazy expiry, used when Redis is
  disabled or unreachable; not shared between workers
- TieredCache: tries Redis first and degrades reads and writes to the
  local tier on any Redis error, so callers never see a cache exception

TTL semantics (both tiers): seconds; zero or negative means no expiry.

Concurrent misses for the same key may both compute and both write.
Last write wins; nothing depends on write order.
"""

import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


# =============================================================================
# Cache Key Generation
# =============================================================================

def make_cache_key(prefix: str, *args, **kwargs) -> str:
    """
    Generate a consistent cache key from prefix and arguments.

    Examples:
        make_cache_key("feed", "personal", 42, limit=120) -> "feed:personal:42:limit=120"
        make_cache_key("feed", "trending", limit=120, window=7)
            -> "feed:trending:limit=120:window=7"

    Args:
        prefix: Cache key prefix
        *args: Positional arguments to include in key
        **kwargs: Keyword arguments to include in key (sorted for consistency)

    Returns:
        Cache key string
    """
    parts = [prefix]

    for arg in args:
        if arg is not None:
            parts.append(str(arg))

    for key in sorted(kwargs.keys()):
        value = kwargs[key]
        if value is not None:
            parts.append(f"{key}={value}")

    return ":".join(parts)


# =============================================================================
# Interface
# =============================================================================

class ResultCache(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: int) -> None: ...


# =============================================================================
# Redis Tier
# =============================================================================

class RedisCache:
    """
    Shared cache backed by Redis.

    Errors are raised, not swallowed: TieredCache decides how to degrade.
    A stored value that is not valid JSON raises ValueError.
    """

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    async def get(self, key: str) -> Any | None:
        value = await self.client.get(key)
        if value is None:
            return None
        return json.loads(value)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        serialized = json.dumps(value, default=str)  # default=str handles dates
        if ttl > 0:
            await self.client.set(key, serialized, ex=ttl)
        else:
            await self.client.set(key, serialized)

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()


# =============================================================================
# In-Process Tier
# =============================================================================

class LocalCache:
    """
    Process-local cache with lazy expiry.

    Entries are dropped when read after expiry. When max_entries is reached
    the oldest entry is evicted. Values are stored as-is, not copied.
    """

    def __init__(
        self,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[Any, float | None]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl: int) -> None:
        expires_at = self._clock() + ttl if ttl > 0 else None
        self._entries.pop(key, None)
        self._entries[key] = (value, expires_at)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)


# =============================================================================
# Tiered Cache
# =============================================================================

_DEGRADE_ERRORS = (RedisError, OSError, ValueError, TypeError)


class TieredCache:
    """
    Redis first, in-process fallback.

    Every operation tries the primary again, so the cache recovers on its
    own once Redis is reachable. A failed primary read falls through to the
    local tier; a failed primary write lands in the local tier instead.
    """

    def __init__(self, primary: RedisCache | None, fallback: LocalCache) -> None:
        self.primary = primary
        self.fallback = fallback

    async def get(self, key: str) -> Any | None:
        if self.primary is not None:
            try:
                value = await self.primary.get(key)
                logger.debug(f"Cache {'HIT' if value is not None else 'MISS'}: {key}")
                return value
            except _DEGRADE_ERRORS as e:
                logger.warning(f"Cache get error for {key}: {e}. Using local cache.")
        return await self.fallback.get(key)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        if self.primary is not None:
            try:
                await self.primary.set(key, value, ttl)
                logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
                return
            except _DEGRADE_ERRORS as e:
                logger.warning(f"Cache set error for {key}: {e}. Using local cache.")
        await self.fallback.set(key, value, ttl)

    async def stats(self) -> dict:
        """Cache status for the health endpoint."""
        status = "disabled"
        if self.primary is not None:
            try:
                status = "connected" if await self.primary.ping() else "error"
            except _DEGRADE_ERRORS:
                status = "disconnected"
        return {"primary": status, "local_entries": len(self.fallback)}

    async def close(self) -> None:
        if self.primary is not None:
            await self.primary.close()


# =============================================================================
# Factory
# =============================================================================

def build_result_cache(settings: Settings | None = None) -> TieredCache:
    """
    Build the cache used by the app, selected once at startup.

    Redis is only attached when cache_enabled is set. Creating the client
    does not connect; an unreachable server shows up as degraded operations.
    """
    settings = settings or get_settings()
    primary = None
    if settings.cache_enabled:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,  # Return strings instead of bytes
            socket_connect_timeout=settings.redis_socket_timeout,
            socket_timeout=settings.redis_socket_timeout,
        )
        primary = RedisCache(client)
        logger.info("Result cache: Redis primary with in-process fallback")
    else:
        logger.info("Result cache: in-process only")
    return TieredCache(primary, LocalCache(settings.local_cache_max_entries))
