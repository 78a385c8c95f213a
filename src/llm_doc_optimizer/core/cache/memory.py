"""Bounded in-process cache with per-entry expiry."""

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from llm_doc_optimizer.core.cache.models import CacheEntry, CacheMetrics
from llm_doc_optimizer.core.resilience.models import Clock

logger = logging.getLogger(__name__)


class MemoryCache:
    """Thread-safe key/value store with TTL and a hard entry cap.

    Reads check expiry first: an expired entry is removed and the read is
    counted as both a miss and an eviction. When the cache is full and a new
    key is written, the entry with the oldest ``created_at`` is evicted
    (insertion age, not access recency).

    ``None`` is the miss value, so ``None`` itself cannot be cached.

    Args:
        max_size: Maximum number of entries
        default_ttl: Lifetime in seconds when ``set`` is given no TTL
        clock: Wall clock returning epoch seconds, injectable for tests
    """

    def __init__(self, max_size: int = 1000, default_ttl: float = 3600, *, clock: Clock = time.time) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, CacheEntry] = {}
        self._metrics = CacheMetrics()

    def get(self, key: str) -> Optional[Any]:
        return self.get_with_ttl(key)[0]

    def get_with_ttl(self, key: str) -> Tuple[Optional[Any], Optional[float]]:
        """Value and seconds of lifetime left, or ``(None, None)`` on a miss."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._metrics.misses += 1
                return None, None
            now = self._clock()
            if entry.is_expired(now):
                del self._entries[key]
                self._metrics.misses += 1
                self._metrics.evictions += 1
                self._metrics.size = len(self._entries)
                return None, None
            entry.hit_count += 1
            self._metrics.hits += 1
            return entry.value, entry.expires_at - now

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store ``value`` for ``ttl`` seconds (``default_ttl`` when None).

        ``None`` values are ignored; a non-positive ``ttl`` drops any
        existing entry instead of storing.
        """
        if value is None:
            return
        lifetime = self.default_ttl if ttl is None else ttl
        with self._lock:
            if lifetime <= 0:
                self._entries.pop(key, None)
                self._metrics.size = len(self._entries)
                return
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._evict_oldest()
            self._entries[key] = CacheEntry(value=value, created_at=now, expires_at=now + lifetime)
            self._metrics.sets += 1
            self._metrics.size = len(self._entries)

    def _evict_oldest(self) -> None:
        # Caller holds self._lock
        oldest = min(self._entries, key=lambda k: self._entries[k].created_at)
        del self._entries[oldest]
        self._metrics.evictions += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._metrics.deletes += 1
            self._metrics.size = len(self._entries)
            return True

    def clear(self) -> None:
        """Drop every entry and reset the counters."""
        with self._lock:
            self._entries.clear()
            self._metrics = CacheMetrics()

    def has(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def cleanup(self) -> int:
        """Remove every expired entry; returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._metrics.evictions += len(expired)
            self._metrics.size = len(self._entries)
        if expired:
            logger.debug("Cache cleanup removed %d expired entries", len(expired))
        return len(expired)

    def get_metrics(self) -> CacheMetrics:
        with self._lock:
            return replace(self._metrics)
