"""Tests for TieredCache and create_cache."""

import pytest

from llm_doc_optimizer.config import CacheConfig
from llm_doc_optimizer.core.cache import MemoryCache, MemoryTier, RedisCache, TieredCache, create_cache
from llm_doc_optimizer.core.observability import get_metrics


@pytest.fixture
def tiers(clock):
    l1 = MemoryCache(max_size=10, default_ttl=300, clock=clock)
    l2 = MemoryCache(max_size=100, default_ttl=3600, clock=clock)
    return l1, l2, TieredCache(l1, MemoryTier(l2), l1_max_ttl=300)


class TestTieredCache:
    """L1/L2 lookup, write-through and TTL capping."""

    @pytest.mark.asyncio
    async def test_set_writes_both_tiers(self, tiers):
        l1, l2, cache = tiers
        await cache.set("k", {"v": 1}, ttl=3600)
        assert l1.get("k") == {"v": 1}
        assert l2.get("k") == {"v": 1}

    @pytest.mark.asyncio
    async def test_l1_ttl_is_capped(self, tiers, clock):
        """L1 lifetimes never exceed l1_max_ttl while L2 keeps the full TTL."""
        l1, l2, cache = tiers
        await cache.set("k", "v", ttl=3600)
        clock.advance(301)
        assert l1.get("k") is None
        assert l2.get("k") == "v"

    @pytest.mark.asyncio
    async def test_shorter_ttl_is_kept_in_l1(self, tiers, clock):
        l1, _, cache = tiers
        await cache.set("k", "v", ttl=60)
        clock.advance(61)
        assert l1.get("k") is None

    @pytest.mark.asyncio
    async def test_l2_hit_backfills_l1_with_capped_ttl(self, tiers, clock):
        l1, l2, cache = tiers
        l2.set("k", "v", 3600)
        assert await cache.get("k") == "v"
        assert l1.get("k") == "v"

        clock.advance(301)
        assert l1.get("k") is None
        assert get_metrics().get_counter("cache.lookups", {"result": "l2_hit"}) == 1

    @pytest.mark.asyncio
    async def test_backfill_never_outlives_l2(self, tiers, clock):
        """An L2 hit near expiry is copied into L1 only for what L2 has left."""
        l1, l2, cache = tiers
        await cache.set("k", "v", ttl=400)
        clock.advance(301)
        assert await cache.get("k") == "v"
        assert l1.get_with_ttl("k") == ("v", 99.0)

        clock.advance(149)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_none_value_is_ignored(self, tiers):
        l1, l2, cache = tiers
        await cache.set("k", None)
        assert l1.get_metrics().sets == 0
        assert l2.get_metrics().sets == 0

    @pytest.mark.asyncio
    async def test_zero_ttl_drops_both_tiers(self, tiers):
        l1, l2, cache = tiers
        await cache.set("k", "v")
        await cache.set("k", "v2", ttl=0)
        assert l1.size() == 0
        assert l2.size() == 0
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_refresh_size_reports_l2_entries(self, tiers):
        _, _, cache = tiers
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.refresh_size()
        assert cache.get_metrics()["l2"].size == 2

    @pytest.mark.asyncio
    async def test_l1_hit_skips_l2(self, tiers):
        l1, l2, cache = tiers
        l1.set("k", "v")
        assert await cache.get("k") == "v"
        assert l2.get_metrics().misses == 0
        assert get_metrics().get_counter("cache.lookups", {"result": "l1_hit"}) == 1

    @pytest.mark.asyncio
    async def test_miss(self, tiers):
        _, _, cache = tiers
        assert await cache.get("nope") is None
        assert get_metrics().get_counter("cache.lookups", {"result": "miss"}) == 1

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, tiers):
        l1, l2, cache = tiers
        await cache.set("k", "v")
        assert await cache.delete("k") is True
        assert await cache.delete("k") is False

        await cache.set("a", 1)
        await cache.clear()
        assert l1.size() == 0
        assert l2.size() == 0

    @pytest.mark.asyncio
    async def test_metrics_per_tier(self, tiers):
        _, _, cache = tiers
        await cache.set("k", "v")
        await cache.get("k")
        metrics = cache.get_metrics()
        assert metrics["l1"].hits == 1
        assert metrics["l2"].sets == 1

    def test_cleanup_purges_l1(self, tiers, clock):
        l1, _, cache = tiers
        l1.set("k", "v", 1)
        clock.advance(2)
        assert cache.cleanup() == 1


class TestCreateCache:
    """Tests for create_cache."""

    @pytest.mark.asyncio
    async def test_in_process_l2_without_redis_url(self):
        cache = create_cache(CacheConfig(l1_max_size=5, l1_max_ttl=30, l2_max_size=50, ttl=600))
        assert isinstance(cache.l2, MemoryTier)
        assert cache.l1.max_size == 5
        assert cache.l1_max_ttl == 30
        assert cache.l2.cache.max_size == 50
        await cache.close()

    def test_redis_l2_with_redis_url(self):
        cache = create_cache(CacheConfig(redis_url="redis://localhost:6379/0", key_prefix="test:"))
        assert isinstance(cache.l2, RedisCache)
        assert cache.l2.key_prefix == "test:"
