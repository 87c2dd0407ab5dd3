"""Thread-safe caches with time-based expiry and oldest-first eviction."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of a cache's size and hit/miss counters."""

    name: str
    size: int
    maxsize: int
    ttl_seconds: float
    hits: int
    misses: int
    hit_rate_percent: float


@dataclass
class _Entry(Generic[V]):
    value: V
    created_at: float
    last_accessed: float
    access_count: int = 0


class TimedCache(Generic[K, V]):
    """Cache whose entries expire after a TTL; the oldest key goes first when full."""

    def __init__(self, ttl_seconds: float, maxsize: int, name: str = "TimedCache") -> None:
        self.ttl_seconds = ttl_seconds
        self.maxsize = maxsize
        self.name = name
        self._entries: dict[K, _Entry[V]] = {}
        # Ordered set of keys in the order they were first inserted.
        self._order: dict[K, None] = {}
        self._hits = 0
        self._misses = 0
        self._lock = threading.RLock()

    def _expired(self, entry: _Entry[V], now: float) -> bool:
        return now - entry.created_at > self.ttl_seconds

    def get(self, key: K) -> V | None:
        """Return the cached value, or None if it is missing or expired."""
        with self._lock:
            now = time.monotonic()
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._expired(entry, now):
                del self._entries[key]
                self._misses += 1
                logger.debug("[%s] Cache miss (expired)", self.name)
                return None
            entry.last_accessed = now
            entry.access_count += 1
            self._hits += 1
            logger.debug("[%s] Cache hit", self.name)
            return entry.value

    def set(self, key: K, value: V) -> None:
        """Store a value, evicting the oldest entries while the cache is full."""
        with self._lock:
            now = time.monotonic()
            while self._entries and len(self._entries) >= self.maxsize:
                if not self._order:
                    break
                oldest = next(iter(self._order))
                del self._order[oldest]
                self._entries.pop(oldest, None)
                logger.debug("[%s] Evicted LRU entry", self.name)
            self._entries[key] = _Entry(value=value, created_at=now, last_accessed=now)
            self._order.setdefault(key, None)
            logger.debug("[%s] Cached entry", self.name)

    def invalidate(self, key: K) -> bool:
        """Remove one entry; return whether it was present."""
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._order.pop(key, None)
            logger.debug("[%s] Invalidated entry", self.name)
            return True

    def clear(self) -> int:
        """Remove every entry and reset the counters; return how many were removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._order.clear()
            self._hits = 0
            self._misses = 0
            logger.info("[%s] Cleared %d entries", self.name, count)
            return count

    def cleanup_expired(self) -> int:
        """Remove all expired entries; return how many were removed."""
        with self._lock:
            now = time.monotonic()
            expired = [k for k, e in self._entries.items() if self._expired(e, now)]
            for key in expired:
                del self._entries[key]
                self._order.pop(key, None)
            if expired:
                logger.debug("[%s] Cleaned up %d expired entries", self.name, len(expired))
            return len(expired)

    def stats(self) -> CacheStats:
        """Return the current statistics."""
        with self._lock:
            total = self._hits + self._misses
            rate = self._hits / total * 100.0 if total else 0.0
            return CacheStats(
                name=self.name,
                size=len(self._entries),
                maxsize=self.maxsize,
                ttl_seconds=self.ttl_seconds,
                hits=self._hits,
                misses=self._misses,
                hit_rate_percent=rate,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class CacheManager:
    """Registry of named caches."""

    def __init__(self) -> None:
        self._caches: dict[str, TimedCache] = {}
        self._lock = threading.Lock()

    def get_cache(self, name: str, ttl_seconds: float = 300, maxsize: int = 128) -> TimedCache:
        """Return the cache with this name, creating it on first use."""
        with self._lock:
            cache = self._caches.get(name)
            if cache is None:
                logger.info("Created cache: %s (ttl=%ss, max=%d)", name, ttl_seconds, maxsize)
                cache = TimedCache(ttl_seconds, maxsize, name)
                self._caches[name] = cache
            return cache

    def clear_all(self) -> dict[str, int]:
        """Clear every cache; return removed counts by name."""
        with self._lock:
            results = {name: cache.clear() for name, cache in self._caches.items()}
        logger.info("Cleared all caches: %s", results)
        return results

    def get_all_stats(self) -> dict[str, CacheStats]:
        """Return statistics for every cache by name."""
        with self._lock:
            return {name: cache.stats() for name, cache in self._caches.items()}

    def cleanup_all_expired(self) -> dict[str, int]:
        """Drop expired entries in every cache; return removed counts by name."""
        with self._lock:
            return {name: cache.cleanup_expired() for name, cache in self._caches.items()}


_manager = CacheManager()


def get_cache_manager() -> CacheManager:
    """Return the process-wide cache manager."""
    return _manager