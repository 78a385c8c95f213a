"""Two-tier cache: a small in-process L1 in front of a larger shared L2.

Reads try L1, then L2; an L2 hit is copied back into L1 for the shorter of
the L1 TTL ceiling and the L2 entry's remaining lifetime. Writes go to both
tiers, with the L1 lifetime clamped to that ceiling, so L1 never outlives L2.
"""

import logging
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable

from llm_doc_optimizer.config.domains import CacheConfig
from llm_doc_optimizer.core.cache.memory import MemoryCache
from llm_doc_optimizer.core.cache.models import CacheMetrics
from llm_doc_optimizer.core.cache.redis_tier import RedisCache
from llm_doc_optimizer.core.observability import get_metrics

logger = logging.getLogger(__name__)


@runtime_checkable
class SharedCacheTier(Protocol):
    """Async contract for the shared (L2) tier."""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def get_with_ttl(self, key: str) -> Tuple[Optional[Any], Optional[float]]:
        ...

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def clear(self) -> None:
        ...

    def get_metrics(self) -> CacheMetrics:
        ...

    async def refresh_size(self) -> int:
        ...

    async def close(self) -> None:
        ...


class MemoryTier:
    """In-process stand-in for the shared tier when no Redis is configured."""

    def __init__(self, cache: MemoryCache) -> None:
        self.cache = cache

    async def get(self, key: str) -> Optional[Any]:
        return self.cache.get(key)

    async def get_with_ttl(self, key: str) -> Tuple[Optional[Any], Optional[float]]:
        return self.cache.get_with_ttl(key)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self.cache.set(key, value, ttl)

    async def delete(self, key: str) -> bool:
        return self.cache.delete(key)

    async def clear(self) -> None:
        self.cache.clear()

    async def refresh_size(self) -> int:
        return self.cache.size()

    def get_metrics(self) -> CacheMetrics:
        return self.cache.get_metrics()

    async def close(self) -> None:
        return None


class TieredCache:
    """L1 memory cache backed by a shared L2 tier.

    Args:
        l1: In-process tier
        l2: Shared tier
        l1_max_ttl: Ceiling (seconds) for any L1 lifetime
    """

    def __init__(self, l1: MemoryCache, l2: SharedCacheTier, *, l1_max_ttl: int = 300) -> None:
        self.l1 = l1
        self.l2 = l2
        self.l1_max_ttl = l1_max_ttl

    async def get(self, key: str) -> Optional[Any]:
        value = self.l1.get(key)
        if value is not None:
            get_metrics().counter("cache.lookups", labels={"result": "l1_hit"})
            return value

        value, remaining = await self.l2.get_with_ttl(key)
        if value is not None:
            backfill_ttl = self.l1_max_ttl if remaining is None else min(self.l1_max_ttl, remaining)
            if backfill_ttl > 0:
                self.l1.set(key, value, backfill_ttl)
            get_metrics().counter("cache.lookups", labels={"result": "l2_hit"})
            return value

        get_metrics().counter("cache.lookups", labels={"result": "miss"})
        return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if value is None:
            return
        self.l1.set(key, value, self.l1_max_ttl if ttl is None else min(ttl, self.l1_max_ttl))
        await self.l2.set(key, value, ttl)

    async def delete(self, key: str) -> bool:
        l1_deleted = self.l1.delete(key)
        l2_deleted = await self.l2.delete(key)
        return l1_deleted or l2_deleted

    async def clear(self) -> None:
        self.l1.clear()
        await self.l2.clear()

    def cleanup(self) -> int:
        """Purge expired L1 entries; L2 expires its own."""
        return self.l1.cleanup()

    async def refresh_size(self) -> None:
        """Sample the L2 entry count into its metrics."""
        await self.l2.refresh_size()

    def get_metrics(self) -> Dict[str, CacheMetrics]:
        return {"l1": self.l1.get_metrics(), "l2": self.l2.get_metrics()}

    async def close(self) -> None:
        await self.l2.close()


def create_cache(config: CacheConfig) -> TieredCache:
    """Build the cache described by ``config``.

    Redis backs L2 when ``redis_url`` is set; otherwise L2 is a larger
    in-process cache.
    """
    l1 = MemoryCache(max_size=config.l1_max_size, default_ttl=config.l1_max_ttl)
    l2: SharedCacheTier
    if config.redis_url:
        l2 = RedisCache.from_url(config.redis_url, default_ttl=config.ttl, key_prefix=config.key_prefix)
        logger.info("Cache L2 tier: redis")
    else:
        l2 = MemoryTier(MemoryCache(max_size=config.l2_max_size, default_ttl=config.ttl))
        logger.info("Cache L2 tier: in-process")
    return TieredCache(l1, l2, l1_max_ttl=config.l1_max_ttl)
