"""Shared cache tier backed by Redis.

Values are stored as JSON under a namespaced key with a server-side expiry.
Any Redis failure is logged and treated as a miss (reads) or a no-op
(writes), so an unavailable shared tier slows the service down but never
fails a request.
"""

import json
import logging
from dataclasses import replace
from typing import Any, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from llm_doc_optimizer.core.cache.models import CacheMetrics

logger = logging.getLogger(__name__)

_CLEAR_BATCH = 500


class RedisCache:
    """Async Redis-backed cache tier.

    Args:
        client: A ``redis.asyncio.Redis`` client (``decode_responses=True``)
        default_ttl: Expiry in seconds when ``set`` is given no TTL
        key_prefix: Namespace prepended to every key
    """

    def __init__(self, client: "redis.Redis", *, default_ttl: int = 3600, key_prefix: str = "") -> None:
        self._client = client
        self.default_ttl = default_ttl
        self.key_prefix = key_prefix
        self._metrics = CacheMetrics()

    @classmethod
    def from_url(cls, url: str, *, default_ttl: int = 3600, key_prefix: str = "") -> "RedisCache":
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, default_ttl=default_ttl, key_prefix=key_prefix)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._client.get(self._key(key))
        except RedisError as exc:
            logger.warning("Redis get failed for %s: %s", key, exc)
            self._metrics.misses += 1
            return None
        if raw is None:
            self._metrics.misses += 1
            return None
        try:
            value = json.loads(raw)
        except ValueError as exc:
            logger.warning("Discarding undecodable cache value for %s: %s", key, exc)
            self._metrics.misses += 1
            return None
        self._metrics.hits += 1
        return value

    async def get_with_ttl(self, key: str) -> Tuple[Optional[Any], Optional[float]]:
        """Value and seconds of lifetime left from ``PTTL``.

        The lifetime is None for a key without expiry and 0.0 when it could
        not be read, so callers never extend a value past its real expiry.
        """
        value = await self.get(key)
        if value is None:
            return None, None
        try:
            pttl = await self._client.pttl(self._key(key))
        except RedisError as exc:
            logger.warning("Redis pttl failed for %s: %s", key, exc)
            return value, 0.0
        if pttl == -1:
            return value, None
        return value, max(0.0, pttl / 1000.0)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store ``value`` as JSON; ``None`` is ignored and a non-positive ``ttl`` deletes the key."""
        if value is None:
            return
        lifetime = self.default_ttl if ttl is None else int(ttl)
        if lifetime <= 0:
            await self.delete(key)
            return
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning("Value for %s is not JSON serializable, not caching: %s", key, exc)
            return
        try:
            await self._client.set(self._key(key), payload, ex=lifetime)
        except RedisError as exc:
            logger.warning("Redis set failed for %s: %s", key, exc)
            return
        self._metrics.sets += 1

    async def delete(self, key: str) -> bool:
        try:
            removed = await self._client.delete(self._key(key))
        except RedisError as exc:
            logger.warning("Redis delete failed for %s: %s", key, exc)
            return False
        if removed:
            self._metrics.deletes += 1
            return True
        return False

    async def has(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(self._key(key)))
        except RedisError as exc:
            logger.warning("Redis exists failed for %s: %s", key, exc)
            return False

    async def clear(self) -> None:
        """Delete every key under this tier's prefix.

        Only the namespace is cleared; other data in the same database is
        left alone.
        """
        batch = []
        try:
            async for name in self._client.scan_iter(match=f"{self.key_prefix}*", count=_CLEAR_BATCH):
                batch.append(name)
                if len(batch) >= _CLEAR_BATCH:
                    await self._client.delete(*batch)
                    batch = []
            if batch:
                await self._client.delete(*batch)
        except RedisError as exc:
            logger.warning("Redis clear failed: %s", exc)
            return
        self._metrics = CacheMetrics()

    async def refresh_size(self) -> int:
        """Count the keys under this tier's prefix into ``CacheMetrics.size``.

        Redis expires keys on its own, so the size is sampled rather than
        tracked per write. On failure the previous size is kept.
        """
        count = 0
        try:
            async for _ in self._client.scan_iter(match=f"{self.key_prefix}*", count=_CLEAR_BATCH):
                count += 1
        except RedisError as exc:
            logger.warning("Redis size scan failed: %s", exc)
            return self._metrics.size
        self._metrics.size = count
        return count

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False

    def get_metrics(self) -> CacheMetrics:
        return replace(self._metrics)

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Redis cache connection closed")
