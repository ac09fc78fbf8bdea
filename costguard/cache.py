"""Bounded in-memory TTL cache for AI responses with Prometheus metrics.

Entries expire lazily on read and actively through ``purge_expired`` (driven
by the background sweep in :mod:`costguard.guard`). When the cache is full the
entry with the fewest hits is evicted, oldest first among equals, so popular
responses survive bursts of one-off requests.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from cachetools import Cache  # type: ignore[import-untyped]

from costguard.metrics import (
    CACHE_ENTRIES,
    CACHE_EVICTIONS,
    CACHE_HIT_RATIO,
    CACHE_HITS,
    CACHE_MISSES,
)
from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    expires_at: float
    hit_count: int = 0
    tags: frozenset[str] = field(default_factory=frozenset)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    @property
    def eviction_rank(self) -> tuple[int, float]:
        return (self.hit_count, self.created_at)


class _FrequencyStore(Cache):
    """``cachetools.Cache`` that evicts the least-hit, then oldest, entry."""

    def __init__(self, maxsize: int) -> None:
        super().__init__(maxsize)
        self.evictions = 0

    def popitem(self) -> tuple[str, CacheEntry]:
        try:
            # min() keeps the first of equal ranks, i.e. insertion order.
            key = min(self, key=lambda k: self[k].eviction_rank)
        except ValueError:
            raise KeyError(f"{type(self).__name__} is empty") from None
        self.evictions += 1
        return (key, self.pop(key))


def _pattern_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a glob where ``*`` matches any run and everything else is literal."""
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")), re.DOTALL)


class BoundedTTLCache:
    """Thread-safe response cache bounded by entry count and per-entry TTL.

    Parameters
    ----------
    max_entries:
        Capacity. Inserting a new key into a full cache first drops expired
        entries, then evicts the lowest-ranked entry if still full.
    default_ttl_seconds:
        TTL applied when ``set`` is called without one.
    enabled:
        When false every read misses and every write is discarded.
    namespace:
        Label used for the Prometheus series of this cache.

    ``None`` is the miss sentinel, so ``None`` values are never stored;
    setting ``None`` removes whatever the key held.
    ``clear`` keeps the cumulative hit/miss counters for long-run monitoring.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl_seconds: float = 1800,
        *,
        enabled: bool = True,
        namespace: str = "api-response",
    ) -> None:
        if max_entries <= 0:
            raise ConfigurationError("max_entries must be positive")
        if default_ttl_seconds <= 0:
            raise ConfigurationError("default_ttl_seconds must be positive")
        self._store = _FrequencyStore(max_entries)
        self._default_ttl = default_ttl_seconds
        self._enabled = enabled
        self._namespace = namespace
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._expired = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def max_entries(self) -> int:
        return int(self._store.maxsize)

    def _record_lookup(self, hit: bool) -> None:
        if hit:
            self._hits += 1
            CACHE_HITS.labels(namespace=self._namespace).inc()
        else:
            self._misses += 1
            CACHE_MISSES.labels(namespace=self._namespace).inc()
        ratio = self._hits / (self._hits + self._misses)
        CACHE_HIT_RATIO.labels(namespace=self._namespace).set(ratio)

    def _purge_expired_locked(self, now: float) -> int:
        expired = [key for key, entry in self._store.items() if entry.is_expired(now)]
        for key in expired:
            del self._store[key]
        self._expired += len(expired)
        return len(expired)

    def _delete_where_locked(self, predicate) -> int:
        doomed = [key for key, entry in self._store.items() if predicate(key, entry)]
        for key in doomed:
            del self._store[key]
        self._deletes += len(doomed)
        CACHE_ENTRIES.labels(namespace=self._namespace).set(len(self._store))
        return len(doomed)

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` when absent, expired or disabled."""
        if not self._enabled:
            return None
        now = time.monotonic()
        with self._lock:
            entry = self._store.get(key)
            if entry is not None and entry.is_expired(now):
                del self._store[key]
                self._expired += 1
                entry = None
            if entry is None:
                self._record_lookup(hit=False)
                return None
            entry.hit_count += 1
            self._record_lookup(hit=True)
            return entry.value

    def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: float | None = None,
        tags: Iterable[str] | None = None,
    ) -> None:
        """Store ``value`` under ``key``, replacing any previous entry."""
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValueError("ttl_seconds must be positive")
        if not self._enabled:
            return
        if value is None:
            # None cannot be told apart from a miss; storing it just drops the old value.
            self.delete(key)
            return
        now = time.monotonic()
        entry = CacheEntry(
            value=value,
            created_at=now,
            expires_at=now + ttl,
            tags=frozenset(tags or ()),
        )
        with self._lock:
            if key not in self._store and self._store.currsize >= self._store.maxsize:
                self._purge_expired_locked(now)
            evictions_before = self._store.evictions
            self._store[key] = entry
            self._sets += 1
            evicted = self._store.evictions - evictions_before
            CACHE_ENTRIES.labels(namespace=self._namespace).set(len(self._store))
        if evicted:
            CACHE_EVICTIONS.labels(namespace=self._namespace).inc(evicted)
            logger.debug("cache: evicted %d entry to store %s", evicted, key)

    def has(self, key: str) -> bool:
        """Return True when ``key`` holds a live entry; counters are untouched."""
        if not self._enabled:
            return False
        now = time.monotonic()
        with self._lock:
            entry = self._store.get(key)
            return entry is not None and not entry.is_expired(now)

    def delete(self, key: str) -> None:
        with self._lock:
            if self._store.pop(key, None) is not None:
                self._deletes += 1
                CACHE_ENTRIES.labels(namespace=self._namespace).set(len(self._store))

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a ``*`` glob and return how many went."""
        regex = _pattern_to_regex(pattern)
        with self._lock:
            return self._delete_where_locked(lambda key, _entry: regex.fullmatch(key) is not None)

    def delete_tag(self, tag: str) -> int:
        """Delete every entry stored with ``tag``."""
        with self._lock:
            return self._delete_where_locked(lambda _key, entry: tag in entry.tags)

    def purge_expired(self) -> int:
        """Drop expired entries that were never read again; returns the count."""
        now = time.monotonic()
        with self._lock:
            purged = self._purge_expired_locked(now)
            CACHE_ENTRIES.labels(namespace=self._namespace).set(len(self._store))
        if purged:
            logger.info("cache: cleaned up %d expired entries", purged)
        return purged

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._sets = 0
            self._deletes = 0
            self._store.evictions = 0
            CACHE_ENTRIES.labels(namespace=self._namespace).set(0)

    def get_stats(self) -> dict[str, Any]:
        """Return hit/miss counts, hit rate and occupancy."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._store),
                "hit_rate": (self._hits / total) if total else 0.0,
                "sets": self._sets,
                "deletes": self._deletes,
                "evictions": self._store.evictions,
                "expired": self._expired,
                "max_entries": self.max_entries,
                "enabled": self._enabled,
            }

    def is_healthy(self) -> bool:
        return True
