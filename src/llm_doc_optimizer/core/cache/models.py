"""Cache entry and counter types shared by every cache tier."""

from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass
class CacheEntry:
    """A stored value with its lifetime.

    Attributes:
        value: Cached payload
        created_at: Epoch seconds when the entry was written
        expires_at: Epoch seconds after which the entry is never returned
        hit_count: Reads served from this entry
    """

    value: Any
    created_at: float
    expires_at: float
    hit_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass
class CacheMetrics:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = round(self.hit_rate, 4)
        return data
