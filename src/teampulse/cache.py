"""In-memory analysis cache.

Memoizes expensive analysis results (generative model calls, categorization)
for the lifetime of the process. The cache is split into independent
partitions, one per analysis kind, each guarded by its own lock:

- user_impact: per-change user impact assessments
- categorization: categorizer results
- translation: rewritten, user-facing wording
- analysis: full generative InsightSets

Locks are held only for dictionary mutation, never across an await or a
network call. Expired entries are dropped lazily on read and by a batched
background sweep.
"""

import asyncio
import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from teampulse.config import CacheConfig
from teampulse.models.activity import ActivityBundle, ActivityRecord
from teampulse.models.cache import CacheEntry
from teampulse.models.insight import Insight

logger = logging.getLogger(__name__)

PARTITIONS = ("user_impact", "categorization", "translation", "analysis")


# =============================================================================
# Normalization
# =============================================================================


def _normalize_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).lower().strip()


def _normalize_item(item: Any) -> Any:
    """Reduce an item to the fields that affect analysis results."""
    if isinstance(item, ActivityRecord):
        return {
            "title": _normalize_text(item.title),
            "body": _normalize_text(item.body),
            "source": item.source,
            "kind": item.kind,
            "labels": sorted(label.lower() for label in item.labels),
            "priority": item.priority,
            "state": _normalize_text(item.state),
        }
    if isinstance(item, Insight):
        return {
            "title": _normalize_text(item.title),
            "details": _normalize_text(item.details),
            "category": item.category,
        }
    if isinstance(item, Mapping):
        labels = item.get("labels") or []
        return {
            "title": _normalize_text(item.get("title")),
            "body": _normalize_text(item.get("body") or item.get("description")),
            "source": item.get("source"),
            "kind": item.get("kind") or item.get("sourceType"),
            "labels": sorted(str(label).lower() for label in labels),
            "priority": item.get("priority"),
            "state": _normalize_text(item.get("state")),
        }
    if isinstance(item, str):
        return _normalize_text(item)
    return item


def normalize_for_key(data: Any) -> Any:
    """Normalize records, insights, bundles or lists of them for hashing."""
    if isinstance(data, ActivityBundle):
        return {
            source: [_normalize_item(r) for r in data.records_for(source)]
            for source in sorted(data.sources)
        }
    if isinstance(data, list | tuple):
        return [_normalize_item(item) for item in data]
    return _normalize_item(data)


def similarity_text(item: Any) -> str:
    """Lowercased title and details/body text used for near-duplicate lookup."""
    if isinstance(item, ActivityBundle):
        return " ".join(r.text for r in item).lower().strip()
    if isinstance(item, ActivityRecord | Insight):
        return item.text.lower().strip()
    if isinstance(item, Mapping):
        parts = [
            str(item.get("title") or ""),
            str(item.get("details") or item.get("body") or item.get("description") or ""),
        ]
        return " ".join(p for p in parts if p).lower().strip()
    if isinstance(item, list | tuple):
        return " ".join(similarity_text(i) for i in item).strip()
    return str(item or "").lower().strip()


def _tokens(text: str) -> set[str]:
    return {word for word in text.split() if len(word) > 2}


def jaccard_similarity(text_a: str, text_b: str) -> float:
    """Jaccard similarity over whitespace tokens longer than 2 characters."""
    words_a = _tokens(text_a)
    words_b = _tokens(text_b)
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


# =============================================================================
# Cache
# =============================================================================


@dataclass
class _Partition:
    name: str
    entries: dict[str, CacheEntry] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)


@dataclass
class _Stats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    sets: int = 0
    total_savings: float = 0.0


class AnalysisCache:
    """Partitioned memoization cache with TTL expiry and LRU eviction.

    Shared across concurrent pipeline runs; every partition has its own lock.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize cache.

        Args:
            config: Cache configuration (defaults apply when omitted)
            clock: Time source in epoch seconds
        """
        self.config = config or CacheConfig()
        self._clock = clock
        self._partitions = {name: _Partition(name) for name in PARTITIONS}
        self._stats = _Stats()
        self._stats_lock = threading.Lock()

    def _partition(self, name: str) -> _Partition:
        try:
            return self._partitions[name]
        except KeyError:
            raise ValueError(
                f"Unknown cache partition: {name}. Valid partitions: {', '.join(PARTITIONS)}"
            ) from None

    def _record(self, **changes: float) -> None:
        with self._stats_lock:
            for name, delta in changes.items():
                setattr(self._stats, name, getattr(self._stats, name) + delta)

    def generate_key(self, data: Any, context: Mapping[str, Any] | None = None) -> str:
        """Generate a deterministic cache key.

        Args:
            data: Records, insights, a bundle or a list of them
            context: Fields that affect the result (provider, model, date range, ...)

        Returns:
            First 16 hex characters of the SHA-256 of the canonical JSON form
        """
        key_data = {
            "data": normalize_for_key(data),
            "context": dict(context or {}),
        }
        canonical = json.dumps(key_data, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]

    def get(self, key: str, partition: str) -> Any | None:
        """Exact-match lookup.

        Expired entries are removed and counted as a miss.

        Returns:
            Cached result, or None on miss
        """
        part = self._partition(partition)
        now = self._clock()

        with part.lock:
            entry = part.entries.get(key)
            if entry is None:
                result = None
                expired = False
            elif entry.is_expired(now, self.config.ttl_seconds):
                del part.entries[key]
                result = None
                expired = True
            else:
                entry.last_accessed_at = now
                entry.access_count += 1
                result = entry.result
                expired = False
                savings = entry.estimated_cost

        if result is None:
            self._record(misses=1, evictions=1 if expired else 0)
            return None

        self._record(hits=1, total_savings=savings)
        logger.debug("Cache hit for %s: %s", partition, key)
        return result

    def set(
        self,
        key: str,
        partition: str,
        result: Any,
        estimated_cost: float = 0.0,
        item: Any = None,
    ) -> None:
        """Insert or overwrite an entry.

        Evicts the least recently used share of the partition first when it
        is at capacity.

        Args:
            key: Cache key from generate_key
            partition: Partition name
            result: Value to cache (must not be None)
            estimated_cost: Estimated cost (USD) of recomputing the result
            item: Source item whose text is kept for find_similar
        """
        if result is None:
            raise ValueError("Cannot cache a None result")

        part = self._partition(partition)
        now = self._clock()
        text = similarity_text(item) if item is not None else ""
        evicted = 0

        with part.lock:
            if key not in part.entries and len(part.entries) >= self.config.max_size:
                evicted = self._evict_lru(part)
            part.entries[key] = CacheEntry(
                key=key,
                result=result,
                created_at=now,
                last_accessed_at=now,
                estimated_cost=estimated_cost,
                normalized_text=text,
            )

        self._record(sets=1, evictions=evicted)
        if evicted:
            logger.debug("Evicted %d entries from %s cache (LRU)", evicted, partition)

    def _evict_lru(self, part: _Partition) -> int:
        # Caller holds part.lock
        count = max(1, int(self.config.max_size * self.config.eviction_fraction))
        oldest = sorted(part.entries.values(), key=lambda e: e.last_accessed_at)[:count]
        for entry in oldest:
            del part.entries[entry.key]
        return len(oldest)

    def find_similar(self, item: Any, partition: str) -> Any | None:
        """Near-duplicate lookup by Jaccard similarity of title and details.

        A hit counts exactly like an exact-match hit.

        Returns:
            Result of the most similar live entry above the threshold, or None
        """
        part = self._partition(partition)
        text = similarity_text(item)
        if not _tokens(text):
            self._record(misses=1)
            return None

        now = self._clock()
        best: CacheEntry | None = None
        best_similarity = 0.0

        with part.lock:
            for entry in part.entries.values():
                if entry.is_expired(now, self.config.ttl_seconds):
                    continue
                similarity = jaccard_similarity(text, entry.normalized_text)
                if similarity > self.config.similarity_threshold and similarity > best_similarity:
                    best = entry
                    best_similarity = similarity
            if best is not None:
                best.last_accessed_at = now
                best.access_count += 1

        if best is None:
            self._record(misses=1)
            return None

        self._record(hits=1, total_savings=best.estimated_cost)
        logger.debug(
            "Found similar cached %s result (%.1f%% similarity)", partition, best_similarity * 100
        )
        return best.result

    def sweep_expired(self) -> int:
        """Remove every TTL-expired entry across partitions.

        Works in batches so each lock acquisition stays short.

        Returns:
            Number of entries removed
        """
        total = 0
        batch_size = self.config.sweep_batch_size

        for part in self._partitions.values():
            with part.lock:
                keys = list(part.entries)
            removed = 0
            for start in range(0, len(keys), batch_size):
                now = self._clock()
                with part.lock:
                    for key in keys[start : start + batch_size]:
                        entry = part.entries.get(key)
                        if entry is not None and entry.is_expired(now, self.config.ttl_seconds):
                            del part.entries[key]
                            removed += 1
            if removed:
                logger.debug("Swept %d expired entries from %s cache", removed, part.name)
            total += removed

        self._record(evictions=total)
        return total

    async def run_sweeper(
        self,
        stop_event: asyncio.Event,
        interval: float | None = None,
    ) -> None:
        """Sweep expired entries periodically until stop_event is set."""
        period = interval if interval is not None else self.config.sweep_interval_seconds
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=period)
            except TimeoutError:
                removed = await asyncio.to_thread(self.sweep_expired)
                if removed:
                    logger.info("Cache sweep removed %d expired entries", removed)

    def size(self, partition: str) -> int:
        """Number of entries in a partition (expired entries included)."""
        part = self._partition(partition)
        with part.lock:
            return len(part.entries)

    def get_stats(self) -> dict[str, Any]:
        """Counters, hit rate and partition sizes."""
        with self._stats_lock:
            stats = _Stats(**vars(self._stats))

        total_requests = stats.hits + stats.misses
        hit_rate = stats.hits / total_requests * 100 if total_requests else 0.0
        return {
            "hits": stats.hits,
            "misses": stats.misses,
            "evictions": stats.evictions,
            "sets": stats.sets,
            "total_requests": total_requests,
            "hit_rate": round(hit_rate, 1),
            "total_savings": round(stats.total_savings, 6),
            "sizes": {name: self.size(name) for name in PARTITIONS},
        }

    def clear(self, partitions: Iterable[str] | None = None) -> None:
        """Drop entries (all partitions by default) and reset counters."""
        for name in partitions or PARTITIONS:
            part = self._partition(name)
            with part.lock:
                part.entries.clear()
        with self._stats_lock:
            self._stats = _Stats()
        logger.debug("Analysis cache cleared")
