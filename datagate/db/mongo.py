"""MongoDB document store backend."""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Optional

from .base import Document, Documents, StorageBackend, sanitize_connection_string
from ..keys import CompositeKey, LogicalKey

logger = logging.getLogger(__name__)

_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")


class MongoBackend(StorageBackend):
    """Document store backed by MongoDB via pymongo's asyncio client.

    Documents are addressed by ``_id``. String identifiers that look like
    ObjectIds are converted; returned documents carry ``_id`` as a string so
    they stay JSON-serializable for the cache.
    """

    id_field = "_id"

    def __init__(self, uri: str, database: str, client: Optional[Any] = None):
        """Initialize MongoDB backend.

        Args:
            uri: MongoDB connection URI
            database: Database name
            client: Pre-built AsyncMongoClient (mainly for tests)
        """
        self._uri = uri
        self._database_name = database
        self._client = client
        self._db: Optional[Any] = None

    async def initialize(self) -> None:
        """Connect to MongoDB and verify the connection."""
        if self._client is None:
            from pymongo import AsyncMongoClient

            logger.info(f"Connecting to MongoDB: {sanitize_connection_string(self._uri)}")
            self._client = AsyncMongoClient(self._uri)

        self._db = self._client[self._database_name]
        await self._client.admin.command("ping")
        logger.info(f"MongoDB connected (database: {self._database_name})")

    async def close(self) -> None:
        """Close MongoDB client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._db = None
            logger.info("MongoDB connection closed")

    def _collection(self, name: str) -> Any:
        if self._db is None:
            raise RuntimeError("MongoDB not initialized")
        return self._db[name]

    def _object_id(self, value: Any) -> Any:
        if isinstance(value, str) and _OBJECT_ID_RE.match(value):
            from bson import ObjectId

            return ObjectId(value)
        return value

    def _query(self, key: Any) -> dict:
        """Build a query document from a key or query."""
        if isinstance(key, (CompositeKey, Mapping)):
            query = key.as_dict() if isinstance(key, CompositeKey) else dict(key)
            if "_id" in query:
                query["_id"] = self._object_id(query["_id"])
            return query
        return {"_id": self._object_id(key)}

    @staticmethod
    def _normalize(doc: Optional[dict]) -> Optional[Document]:
        if doc is None:
            return None
        if "_id" in doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def get(self, collection: str, key: LogicalKey) -> Optional[Document]:
        """Get a document by id."""
        doc = await self._collection(collection).find_one(self._query(key))
        if doc is None:
            logger.debug(f"No document found with key {key!r} in collection {collection}")
        return self._normalize(doc)

    async def set(
        self,
        collection: str,
        key: Optional[Any],
        data: Optional[Document] = None,
    ) -> Document:
        """Upsert fields into the document matching ``key``."""
        from pymongo import ReturnDocument

        data = data or {}
        if key is None:
            key = data.get("_id")
            if key is None:
                raise ValueError("MongoDB set requires a key, a query or an _id in the data")

        query = self._query(key)
        payload = {k: v for k, v in data.items() if k != "_id"}
        doc = await self._collection(collection).find_one_and_update(
            query,
            {"$set": payload},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        logger.debug(f"Document set in collection {collection}: {query}")
        return self._normalize(doc) or {}

    async def fetch(self, collection: str, filters: Any = None) -> Documents:
        """Fetch documents matching a MongoDB query document."""
        cursor = self._collection(collection).find(filters or {})
        return [self._normalize(doc) async for doc in cursor]  # type: ignore[misc]
