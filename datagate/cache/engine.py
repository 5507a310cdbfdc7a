"""Cache engine factory and global instance management."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Tuple

from ..config.settings import Settings, parse_cluster_nodes
from ..errors import CacheError
from .base import CacheBackend, CacheStats
from .memory import MemoryCacheBackend

logger = logging.getLogger(__name__)


class CacheEngine:
    """Central cache engine that manages backend lifecycle.

    Every backend failure surfaces as :class:`CacheError`; a miss is
    returned as None.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        cluster_nodes: Optional[List[Tuple[str, int]]] = None,
        backend: Optional[CacheBackend] = None,
    ):
        """Initialize cache engine.

        Args:
            redis_url: Redis connection URL. If not provided,
                      uses DATAGATE_REDIS_URL or defaults to in-memory.
            cluster_nodes: Redis Cluster seed nodes. If not provided,
                           uses DATAGATE_REDIS_CLUSTER_NODES.
            backend: Explicit backend, bypassing configuration
        """
        self._redis_url = redis_url or Settings.DATAGATE_REDIS_URL
        self._cluster_nodes = cluster_nodes or parse_cluster_nodes(
            Settings.DATAGATE_REDIS_CLUSTER_NODES
        )
        self._backend: Optional[CacheBackend] = backend
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def backend_type(self) -> str:
        """Get the type of cache backend."""
        if self._backend is not None:
            return type(self._backend).__name__
        if self._cluster_nodes:
            return "redis-cluster"
        if self._redis_url:
            return "redis"
        return "memory"

    def _build_backend(self) -> CacheBackend:
        if self._cluster_nodes or self._redis_url:
            from .redis import RedisCacheBackend

            return RedisCacheBackend(
                redis_url=self._redis_url,
                cluster_nodes=self._cluster_nodes,
                password=Settings.REDIS_PASSWORD,
                prefix=Settings.DATAGATE_CACHE_PREFIX,
                default_ttl=Settings.DEFAULT_CACHE_EXPIRY,
            )
        return MemoryCacheBackend(
            max_size=Settings.DATAGATE_CACHE_MAX_SIZE,
            default_ttl=Settings.DEFAULT_CACHE_EXPIRY,
        )

    async def initialize(self) -> None:
        """Initialize the cache backend.

        Raises:
            CacheError: If the backend cannot be built or connected. The next
                        call tries again.
        """
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            try:
                if self._backend is None:
                    self._backend = self._build_backend()
                await self._backend.initialize()
            except Exception as exc:
                raise CacheError(f"Cache initialization failed: {exc}", operation="initialize") from exc

            self._initialized = True
            logger.info(f"Cache engine initialized: {self.backend_type}")

    async def close(self) -> None:
        """Close the cache backend."""
        if self._backend:
            await self._backend.close()
            self._backend = None
            self._initialized = False

    @property
    def backend(self) -> CacheBackend:
        """Get the cache backend (must be initialized first)."""
        if not self._backend:
            raise RuntimeError("Cache engine not initialized. Call initialize() first.")
        return self._backend

    async def _call(self, operation: str, key: Optional[str], *args: Any) -> Any:
        if not self._initialized:
            await self.initialize()
        try:
            return await getattr(self.backend, operation)(*args)
        except Exception as exc:
            raise CacheError(
                f"Cache {operation} failed for key {key!r}: {exc}", operation=operation, key=key
            ) from exc

    async def get(self, key: str) -> Optional[Any]:
        """Get a value from cache, None on miss."""
        return await self._call("get", key, key)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set a value in cache."""
        await self._call("set", key, key, value, ttl)

    async def delete(self, key: str) -> bool:
        """Delete a value from cache."""
        return await self._call("delete", key, key)

    async def exists(self, key: str) -> bool:
        return await self._call("exists", key, key)

    async def clear(self, pattern: Optional[str] = None) -> int:
        """Clear entries matching pattern, or everything."""
        return await self._call("clear", pattern, pattern)

    async def get_stats(self) -> CacheStats:
        return await self._call("get_stats", None)


# Global cache instance
_cache: Optional[CacheEngine] = None


def get_cache() -> CacheEngine:
    """Get the global cache engine (connected lazily on first use)."""
    global _cache

    if _cache is None:
        _cache = CacheEngine()
    return _cache


async def cleanup_cache() -> None:
    """Cleanup the global cache engine."""
    global _cache

    if _cache:
        await _cache.close()
        _cache = None
