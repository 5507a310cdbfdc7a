"""Cache layer for datagate.

Supports in-memory caching (development) and Redis or Redis Cluster
(production). Configure via environment variables.

Examples:
    In-memory (default): DATAGATE_REDIS_URL unset
    Redis: DATAGATE_REDIS_URL=redis://localhost:6379/0
    Redis Cluster: DATAGATE_REDIS_CLUSTER_NODES=10.0.0.1:6379,10.0.0.2:6379
"""

from .base import CacheBackend, CacheStats
from .engine import (
    CacheEngine,
    get_cache,
    cleanup_cache,
)
from .memory import MemoryCacheBackend

__all__ = [
    "CacheBackend",
    "CacheStats",
    "CacheEngine",
    "MemoryCacheBackend",
    "get_cache",
    "cleanup_cache",
]
