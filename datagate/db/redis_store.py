"""Redis (single node or cluster) used as the primary store."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from .base import Document, Documents, StorageBackend
from ..cache.redis import connect_redis, describe_connection, deserialize, serialize
from ..keys import LogicalKey, key_identifier

logger = logging.getLogger(__name__)


class RedisStoreBackend(StorageBackend):
    """Documents stored as JSON strings under ``{collection}:{id}``.

    ``fetch`` takes a glob pattern (default ``*``) matched against ids in the
    collection. Matching uses SCAN, never KEYS, so it does not block the
    cluster, but it is still a full keyspace walk.
    """

    id_field = "id"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        cluster_nodes: Optional[List[Tuple[str, int]]] = None,
        password: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        self._redis_url = redis_url
        self._cluster_nodes = cluster_nodes or []
        self._password = password
        self._redis: Optional[Any] = client

    async def initialize(self) -> None:
        if self._redis is None:
            logger.info(
                f"Connecting to Redis store: {describe_connection(self._redis_url, self._cluster_nodes)}"
            )
            self._redis = connect_redis(self._redis_url, self._cluster_nodes, self._password)

        await self._redis.ping()
        logger.info("Redis store connection established")

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis store connection closed")

    def _client(self) -> Any:
        if not self._redis:
            raise RuntimeError("Redis not initialized")
        return self._redis

    async def get(self, collection: str, key: LogicalKey) -> Optional[Document]:
        data = await self._client().get(f"{collection}:{key_identifier(key)}")
        if data is None:
            return None
        return deserialize(data)

    async def set(
        self,
        collection: str,
        key: Optional[Any],
        data: Optional[Document] = None,
    ) -> Document:
        """Merge ``data`` into the stored document."""
        data = data or {}
        doc_id = key_identifier(key) if key is not None else data.get(self.id_field)
        if doc_id is None:
            raise ValueError("Redis store set requires a document ID")

        client = self._client()
        redis_key = f"{collection}:{doc_id}"
        existing = await client.get(redis_key)
        document = deserialize(existing) if existing is not None else {}
        if not isinstance(document, dict):
            document = {}
        document.update(data)
        document[self.id_field] = doc_id

        await client.set(redis_key, serialize(document))
        logger.debug(f"Key {redis_key} set in Redis store")
        return document

    async def fetch(self, collection: str, filters: Any = None) -> Documents:
        client = self._client()
        pattern = f"{collection}:{filters or '*'}"

        keys = [key async for key in client.scan_iter(match=pattern, count=100)]
        if not keys:
            return []

        documents = []
        for key in keys:
            value = await client.get(key)
            if value is not None:
                documents.append(deserialize(value))
        return documents
