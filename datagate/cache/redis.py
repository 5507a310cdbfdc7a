"""Redis cache backend for production distributed deployments."""

from __future__ import annotations

import base64
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

import redis.asyncio as aioredis
from redis.asyncio.cluster import ClusterNode, RedisCluster

from .base import CacheBackend, CacheStats
from ..db.base import sanitize_connection_string

logger = logging.getLogger(__name__)


def connect_redis(
    redis_url: Optional[str] = None,
    cluster_nodes: Optional[Sequence[Tuple[str, int]]] = None,
    password: Optional[str] = None,
) -> Any:
    """Build a Redis or Redis Cluster client.

    Cluster seed nodes take precedence over a URL; the client discovers the
    rest of the cluster itself.
    """
    if cluster_nodes:
        return RedisCluster(
            startup_nodes=[ClusterNode(host, port) for host, port in cluster_nodes],
            password=password,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
        )
    if not redis_url:
        raise ValueError("Either a Redis URL or cluster nodes are required")
    return aioredis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
        health_check_interval=30,
    )


def describe_connection(
    redis_url: Optional[str], cluster_nodes: Optional[Sequence[Tuple[str, int]]]
) -> str:
    """Connection info safe for logs."""
    if cluster_nodes:
        return "cluster " + ",".join(f"{host}:{port}" for host, port in cluster_nodes)
    return sanitize_connection_string(redis_url or "")


# Marker for values JSON has no native type for
_TYPE_TAG = "$datagate"


class _TaggedEncoder(json.JSONEncoder):
    """Encodes driver-native values (Decimal, datetime, ObjectId) as tagged objects."""

    def default(self, o: Any) -> Any:
        if isinstance(o, Decimal):
            return {_TYPE_TAG: "decimal", "value": str(o)}
        if isinstance(o, datetime):
            return {_TYPE_TAG: "datetime", "value": o.isoformat()}
        if isinstance(o, date):
            return {_TYPE_TAG: "date", "value": o.isoformat()}
        if isinstance(o, bytes):
            return {_TYPE_TAG: "bytes", "value": base64.b64encode(o).decode("ascii")}
        if type(o).__name__ == "ObjectId":
            return {_TYPE_TAG: "objectid", "value": str(o)}
        return super().default(o)


def _restore_tagged(obj: Dict[str, Any]) -> Any:
    if len(obj) != 2 or _TYPE_TAG not in obj or "value" not in obj:
        return obj

    kind, value = obj[_TYPE_TAG], obj["value"]
    if kind == "decimal":
        return Decimal(value)
    if kind == "datetime":
        return datetime.fromisoformat(value)
    if kind == "date":
        return date.fromisoformat(value)
    if kind == "bytes":
        return base64.b64decode(value)
    if kind == "objectid":
        from bson import ObjectId

        return ObjectId(value)
    return obj


def serialize(value: Any) -> str:
    """Serialize value for storage.

    Raises:
        TypeError: If the value holds a type that cannot be restored
    """
    return json.dumps(value, cls=_TaggedEncoder)


def deserialize(data: str) -> Any:
    """Deserialize value from storage, restoring tagged types."""
    try:
        return json.loads(data, object_hook=_restore_tagged)
    except (json.JSONDecodeError, TypeError):
        return data


class RedisCacheBackend(CacheBackend):
    """Redis-backed cache for distributed deployments.

    Works against a single node (``redis_url``) or a cluster
    (``cluster_nodes``). Values are stored as JSON with native TTLs.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        cluster_nodes: Optional[List[Tuple[str, int]]] = None,
        password: Optional[str] = None,
        prefix: str = "datagate:",
        default_ttl: int = 3600,
        client: Optional[Any] = None,
    ):
        """Initialize Redis cache.

        Args:
            redis_url: Redis connection URL (redis://host:port/db)
            cluster_nodes: Seed nodes for Redis Cluster
            password: Password for cluster connections
            prefix: Key prefix for all cache entries
            default_ttl: Default TTL in seconds when not specified
            client: Pre-built client (mainly for tests)
        """
        self._redis_url = redis_url
        self._cluster_nodes = cluster_nodes or []
        self._password = password
        self._prefix = prefix
        self._default_ttl = default_ttl
        self._redis: Optional[Any] = client
        self._hits = 0
        self._misses = 0

    def _make_key(self, key: str) -> str:
        """Add prefix to key."""
        return f"{self._prefix}{key}"

    @property
    def connection_info(self) -> str:
        return describe_connection(self._redis_url, self._cluster_nodes)

    async def initialize(self) -> None:
        """Connect to Redis."""
        if self._redis is None:
            logger.info(f"Connecting to Redis cache: {self.connection_info}")
            self._redis = connect_redis(self._redis_url, self._cluster_nodes, self._password)

        # Test connection
        await self._redis.ping()
        logger.info("Redis cache connection established")

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis cache connection closed")

    def _client(self) -> Any:
        if not self._redis:
            raise RuntimeError("Redis not initialized")
        return self._redis

    async def get(self, key: str) -> Optional[Any]:
        data = await self._client().get(self._make_key(key))
        if data is None:
            self._misses += 1
            return None

        self._hits += 1
        return deserialize(data)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = ttl or self._default_ttl
        await self._client().set(self._make_key(key), serialize(value), ex=ttl)

    async def delete(self, key: str) -> bool:
        result = await self._client().delete(self._make_key(key))
        return result > 0

    async def exists(self, key: str) -> bool:
        return await self._client().exists(self._make_key(key)) > 0

    async def clear(self, pattern: Optional[str] = None) -> int:
        """Clear cache entries matching pattern."""
        client = self._client()
        full_pattern = self._make_key(pattern or "*")
        count = 0

        # Use SCAN for safe iteration
        async for key in client.scan_iter(match=full_pattern, count=100):
            await client.delete(key)
            count += 1

        return count

    async def get_stats(self) -> CacheStats:
        size = 0
        if self._redis and not self._cluster_nodes:
            info = await self._redis.info("keyspace")
            db_info = info.get("db0", {})
            size = db_info.get("keys", 0) if isinstance(db_info, dict) else 0

        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            size=size,
            max_size=-1,  # Redis doesn't have fixed size
            backend_type="redis-cluster" if self._cluster_nodes else "redis",
            connection_info=self.connection_info,
        )
