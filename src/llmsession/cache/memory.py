# src/llmsession/cache/memory.py
"""
In-memory cache provider.

A process-local, dictionary-backed implementation of the cache contract,
intended for single-process deployments, development and tests. It supports:
- Per-key TTL with sliding refresh on every `set`
- An optional item limit with LRU eviction
- Lazy cleanup of expired entries during normal operations
- Hit/miss statistics

Connectivity events never fire for this provider; `close()` is a no-op.

Usage:
    cache = InMemoryCacheProvider(max_items=10000)
    await cache.set("session:alice", '[{"role": "user", "content": "hi"}]', ttl_seconds=3600)
    value = await cache.get("session:alice")
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import BaseModel, Field

from .base import BaseCacheProvider, CacheEvent, CacheEventHandler

logger = logging.getLogger(__name__)


class InMemoryCacheConfig(BaseModel):
    """Configuration for the in-memory cache provider.

    Attributes:
        max_items: Maximum number of entries kept (0 = unlimited).
        cleanup_interval_seconds: How often expired entries are swept.
    """

    max_items: int = Field(default=10000, ge=0, description="Maximum number of items (0=unlimited)")
    cleanup_interval_seconds: int = Field(default=60, ge=1, le=3600, description="Cleanup interval in seconds")


@dataclass
class CacheItem:
    """A value held by the in-memory provider.

    Attributes:
        value: The stored string.
        expires_at: Clock reading after which the item is expired.
        last_accessed: Clock reading of the last read or write (LRU order).
    """

    value: str
    expires_at: float
    last_accessed: float = field(default=0.0)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class InMemoryCacheProvider(BaseCacheProvider):
    """Dictionary-backed cache provider with TTL and LRU eviction.

    A single RLock guards the store so the provider can also be shared by
    code running outside the event loop thread.
    """

    def __init__(
        self,
        max_items: int = 10000,
        cleanup_interval_seconds: int = 60,
        config: InMemoryCacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the provider.

        Args:
            max_items: Maximum number of entries. Set to 0 for unlimited.
            cleanup_interval_seconds: How often to sweep expired entries.
            config: Optional configuration object (overrides other params).
            clock: Monotonic time source in seconds.
        """
        super().__init__()
        if config is not None:
            max_items = config.max_items
            cleanup_interval_seconds = config.cleanup_interval_seconds

        self.max_items = max_items
        self.cleanup_interval = cleanup_interval_seconds
        self._clock = clock

        self._store: dict[str, CacheItem] = {}
        self._lock = threading.RLock()
        self._last_cleanup = clock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "evictions": 0, "expirations": 0}

        logger.debug(f"InMemoryCacheProvider initialized: max_items={max_items}")

    def get_name(self) -> str:
        return "memory"

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _maybe_cleanup(self, now: float) -> None:
        if now - self._last_cleanup > self.cleanup_interval:
            expired = [k for k, item in self._store.items() if item.is_expired(now)]
            for key in expired:
                del self._store[key]
            self._stats["expirations"] += len(expired)
            self._last_cleanup = now
            if expired:
                logger.debug(f"Cleaned up {len(expired)} expired cache entries")

    def _evict_lru(self) -> None:
        """Evict the least recently used 10% of entries (at least one)."""
        ordered = sorted(self._store.items(), key=lambda kv: kv[1].last_accessed)
        count = max(1, len(ordered) // 10)
        for key, _ in ordered[:count]:
            del self._store[key]
        self._stats["evictions"] += count
        logger.debug(f"Evicted {count} least recently used cache entries")

    # -------------------------------------------------------------------------
    # Cache contract
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)
            item = self._store.get(key)
            if item is None:
                self._stats["misses"] += 1
                return None
            if item.is_expired(now):
                del self._store[key]
                self._stats["misses"] += 1
                self._stats["expirations"] += 1
                return None
            item.last_accessed = now
            self._stats["hits"] += 1
            return item.value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)
            if self.max_items > 0 and key not in self._store and len(self._store) >= self.max_items:
                self._evict_lru()
            self._store[key] = CacheItem(value=value, expires_at=now + ttl_seconds, last_accessed=now)
            self._stats["sets"] += 1

    async def clear_all(self) -> None:
        with self._lock:
            count = len(self._store)
            self._store.clear()
        logger.debug(f"Cleared {count} entries from in-memory cache")

    async def close(self) -> None:
        # Nothing to release.
        pass

    def subscribe(self, event: CacheEvent, handler: CacheEventHandler) -> None:
        logger.debug(f"In-memory cache never emits '{CacheEvent(event).value}'; subscription ignored.")

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        """Return item count, limits and hit/miss counters."""
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            return {
                "item_count": len(self._store),
                "max_items": self.max_items,
                "hit_rate": self._stats["hits"] / total if total > 0 else 0.0,
                **self._stats,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
