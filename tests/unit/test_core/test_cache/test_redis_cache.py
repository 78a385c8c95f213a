"""Tests for the Redis-backed shared tier, using an AsyncMock client."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from llm_doc_optimizer.core.cache import RedisCache


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def cache(client):
    return RedisCache(client, default_ttl=3600, key_prefix="ldo:")


class TestRedisCache:
    """JSON storage, namespacing and failure handling."""

    @pytest.mark.asyncio
    async def test_set_serializes_with_expiry(self, cache, client):
        await cache.set("opt:abc", {"content": "x"}, ttl=120)
        client.set.assert_awaited_once_with("ldo:opt:abc", json.dumps({"content": "x"}), ex=120)
        assert cache.get_metrics().sets == 1

    @pytest.mark.asyncio
    async def test_set_uses_default_ttl(self, cache, client):
        await cache.set("k", 1)
        assert client.set.await_args.kwargs["ex"] == 3600

    @pytest.mark.asyncio
    async def test_get_hit(self, cache, client):
        client.get.return_value = json.dumps({"content": "x"})
        assert await cache.get("k") == {"content": "x"}
        client.get.assert_awaited_once_with("ldo:k")
        assert cache.get_metrics().hits == 1

    @pytest.mark.asyncio
    async def test_get_miss(self, cache, client):
        client.get.return_value = None
        assert await cache.get("k") is None
        assert cache.get_metrics().misses == 1

    @pytest.mark.asyncio
    async def test_redis_error_is_a_miss(self, cache, client):
        """An unavailable Redis degrades to a cache miss instead of failing."""
        client.get.side_effect = RedisConnectionError("connection refused")
        assert await cache.get("k") is None
        assert cache.get_metrics().misses == 1

    @pytest.mark.asyncio
    async def test_redis_error_on_set_is_swallowed(self, cache, client):
        client.set.side_effect = RedisConnectionError("connection refused")
        await cache.set("k", 1)
        assert cache.get_metrics().sets == 0

    @pytest.mark.asyncio
    async def test_undecodable_value_is_a_miss(self, cache, client):
        client.get.return_value = "{not json"
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_unserializable_value_is_not_cached(self, cache, client):
        await cache.set("k", object())
        client.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete(self, cache, client):
        client.delete.return_value = 1
        assert await cache.delete("k") is True
        client.delete.assert_awaited_once_with("ldo:k")
        client.delete.return_value = 0
        assert await cache.delete("k") is False

    @pytest.mark.asyncio
    async def test_has(self, cache, client):
        client.exists.return_value = 1
        assert await cache.has("k") is True
        client.exists.side_effect = RedisConnectionError("down")
        assert await cache.has("k") is False

    @pytest.mark.asyncio
    async def test_clear_only_deletes_prefixed_keys(self, cache, client):
        async def scan_iter(match, count):
            assert match == "ldo:*"
            for name in ("ldo:a", "ldo:b"):
                yield name

        client.scan_iter = MagicMock(side_effect=scan_iter)
        await cache.clear()
        client.delete.assert_awaited_once_with("ldo:a", "ldo:b")
        client.flushdb.assert_not_called()

    @pytest.mark.asyncio
    async def test_none_value_is_not_written(self, cache, client):
        await cache.set("k", None)
        client.set.assert_not_awaited()
        assert cache.get_metrics().sets == 0

    @pytest.mark.asyncio
    async def test_zero_ttl_deletes_instead_of_default(self, cache, client):
        await cache.set("k", 1, ttl=0)
        client.set.assert_not_awaited()
        client.delete.assert_awaited_once_with("ldo:k")

    @pytest.mark.asyncio
    async def test_get_with_ttl_reads_pttl(self, cache, client):
        client.get.return_value = json.dumps("x")
        client.pttl.return_value = 120000
        assert await cache.get_with_ttl("k") == ("x", 120.0)
        client.pttl.assert_awaited_once_with("ldo:k")

    @pytest.mark.asyncio
    async def test_get_with_ttl_without_expiry(self, cache, client):
        client.get.return_value = json.dumps("x")
        client.pttl.return_value = -1
        assert await cache.get_with_ttl("k") == ("x", None)

    @pytest.mark.asyncio
    async def test_get_with_ttl_unreadable_lifetime(self, cache, client):
        client.get.return_value = json.dumps("x")
        client.pttl.side_effect = RedisConnectionError("down")
        assert await cache.get_with_ttl("k") == ("x", 0.0)

    @pytest.mark.asyncio
    async def test_get_with_ttl_miss_skips_pttl(self, cache, client):
        client.get.return_value = None
        assert await cache.get_with_ttl("k") == (None, None)
        client.pttl.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refresh_size_counts_prefixed_keys(self, cache, client):
        async def scan_iter(match, count):
            assert match == "ldo:*"
            for name in ("ldo:a", "ldo:b", "ldo:c"):
                yield name

        client.scan_iter = MagicMock(side_effect=scan_iter)
        assert await cache.refresh_size() == 3
        assert cache.get_metrics().size == 3

    @pytest.mark.asyncio
    async def test_refresh_size_keeps_last_count_on_error(self, cache, client):
        async def scan_iter(match, count):
            yield "ldo:a"

        async def failing_scan(match, count):
            raise RedisConnectionError("down")
            yield  # pragma: no cover

        client.scan_iter = MagicMock(side_effect=scan_iter)
        await cache.refresh_size()
        client.scan_iter = MagicMock(side_effect=failing_scan)
        assert await cache.refresh_size() == 1
        assert cache.get_metrics().size == 1

    @pytest.mark.asyncio
    async def test_ping(self, cache, client):
        client.ping.return_value = True
        assert await cache.ping() is True
        client.ping.side_effect = RedisConnectionError("down")
        assert await cache.ping() is False

    @pytest.mark.asyncio
    async def test_close(self, cache, client):
        await cache.close()
        client.aclose.assert_awaited_once()
