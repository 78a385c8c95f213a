"""Tiered result cache.

    from llm_doc_optimizer.core.cache import CacheKeyGenerator, create_cache

    cache = create_cache(config.cache)
    key = CacheKeyGenerator.optimization(content, model, options)
    if (hit := await cache.get(key)) is None:
        ...
"""

from llm_doc_optimizer.core.cache.keys import CacheKeyGenerator
from llm_doc_optimizer.core.cache.memory import MemoryCache
from llm_doc_optimizer.core.cache.models import CacheEntry, CacheMetrics
from llm_doc_optimizer.core.cache.redis_tier import RedisCache
from llm_doc_optimizer.core.cache.tiered import MemoryTier, SharedCacheTier, TieredCache, create_cache

__all__ = [
    "CacheEntry",
    "CacheKeyGenerator",
    "CacheMetrics",
    "MemoryCache",
    "MemoryTier",
    "RedisCache",
    "SharedCacheTier",
    "TieredCache",
    "create_cache",
]
