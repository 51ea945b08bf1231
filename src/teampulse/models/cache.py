"""Cache entities."""

from dataclasses import dataclass
from typing import Any


@dataclass
class CacheEntry:
    """A memoized analysis result.

    Entries leave the cache only through TTL expiry or LRU eviction. Every
    read refreshes `last_accessed_at`.

    Attributes:
        key: Deterministic hash of the normalized input
        result: Cached value
        created_at: Insertion time (epoch seconds)
        last_accessed_at: Last read or write time (epoch seconds)
        access_count: Number of hits served
        estimated_cost: Estimated cost (USD) of recomputing the result
        normalized_text: Lowercased source text used for similarity lookup
    """

    key: str
    result: Any
    created_at: float
    last_accessed_at: float
    access_count: int = 0
    estimated_cost: float = 0.0
    normalized_text: str = ""

    def age(self, now: float) -> float:
        """Age in seconds."""
        return now - self.created_at

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        """Return True once the entry is older than the TTL."""
        return self.age(now) > ttl_seconds
