"""In-memory cache backend for development and testing."""

from __future__ import annotations

import asyncio
import copy
import fnmatch
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Optional

from .base import CacheBackend, CacheStats

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Single cache entry with optional expiration."""

    value: Any
    expires_at: Optional[float] = None  # monotonic timestamp

    def is_expired(self) -> bool:
        """Check if entry has expired."""
        if self.expires_at is None:
            return False
        return time.monotonic() >= self.expires_at


class MemoryCacheBackend(CacheBackend):
    """In-process cache with TTL and LRU eviction.

    Suitable for single-process deployments and tests. Values are deep-copied
    on the way in and out, so callers can never mutate a cached entry.
    """

    def __init__(self, max_size: int = 10000, default_ttl: Optional[int] = None):
        """Initialize memory cache.

        Args:
            max_size: Maximum number of entries (LRU eviction when exceeded)
            default_ttl: TTL applied when set() is called without one
        """
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    async def initialize(self) -> None:
        logger.info(f"Initializing in-memory cache (max_size: {self._max_size})")

    async def close(self) -> None:
        self._cache.clear()
        logger.info("In-memory cache closed")

    def _evict_lru(self) -> None:
        """Evict least recently used entries if over max size."""
        while len(self._cache) >= self._max_size and self._cache:
            self._cache.popitem(last=False)

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired():
                del self._cache[key]
                self._misses += 1
                return None

            self._hits += 1
            self._cache.move_to_end(key)
            return copy.deepcopy(entry.value)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        async with self._lock:
            if key not in self._cache:
                self._evict_lru()

            ttl = ttl or self._default_ttl
            expires_at = time.monotonic() + ttl if ttl else None
            self._cache[key] = CacheEntry(value=copy.deepcopy(value), expires_at=expires_at)
            self._cache.move_to_end(key)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._cache.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return False
            if entry.is_expired():
                del self._cache[key]
                return False
            return True

    async def clear(self, pattern: Optional[str] = None) -> int:
        """Clear cache entries matching pattern (supports * and ? wildcards)."""
        async with self._lock:
            if pattern is None:
                count = len(self._cache)
                self._cache.clear()
                return count

            keys_to_delete = [key for key in self._cache if fnmatch.fnmatchcase(key, pattern)]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)

    async def get_stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            size=len(self._cache),
            max_size=self._max_size,
            backend_type="memory",
            connection_info="in-process",
        )
