"""DynamoDB wide-column store backend."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from .base import Document, Documents, StorageBackend
from ..keys import LogicalKey, key_fields

logger = logging.getLogger(__name__)


class DynamoDBBackend(StorageBackend):
    """Wide-column store backed by a boto3 DynamoDB resource.

    Items carry their own key attributes. ``set`` writes the whole item;
    a key passed alongside is merged into it. boto3 is blocking, so every
    call runs in a worker thread.

    ``fetch`` filters are request parameters: with a ``KeyConditionExpression``
    a Query is issued, otherwise a Scan. Result pages are followed until
    ``LastEvaluatedKey`` is absent.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        partition_key: str = "id",
        resource: Optional[Any] = None,
    ):
        """Initialize DynamoDB backend.

        Args:
            region: AWS region
            partition_key: Attribute that identifies items
            resource: Pre-built boto3 DynamoDB resource (mainly for tests)
        """
        self._region = region
        self._partition_key = partition_key
        self._resource = resource
        self.id_field = partition_key

    async def initialize(self) -> None:
        if self._resource is None:
            import boto3

            self._resource = await asyncio.to_thread(
                boto3.resource, "dynamodb", region_name=self._region
            )
        logger.info(f"DynamoDB client initialized (region: {self._region})")

    async def close(self) -> None:
        if self._resource is not None:
            client = getattr(self._resource.meta, "client", None)
            if client is not None:
                await asyncio.to_thread(client.close)
            self._resource = None
            logger.info("DynamoDB client closed")

    def _table(self, name: str) -> Any:
        if self._resource is None:
            raise RuntimeError("DynamoDB not initialized")
        return self._resource.Table(name)

    async def get(self, collection: str, key: LogicalKey) -> Optional[Document]:
        table = self._table(collection)
        response = await asyncio.to_thread(
            table.get_item, Key=key_fields(key, self._partition_key)
        )
        return response.get("Item")

    async def set(
        self,
        collection: str,
        key: Optional[Any],
        data: Optional[Document] = None,
    ) -> Document:
        """Put the item built from ``data`` and any key fields."""
        item: Dict[str, Any] = dict(data or {})
        if key is not None:
            item.update(key_fields(key, self._partition_key))
        if self._partition_key not in item:
            raise ValueError(f"DynamoDB item is missing partition key '{self._partition_key}'")

        table = self._table(collection)
        await asyncio.to_thread(table.put_item, Item=item)
        logger.debug(f"Item {item[self._partition_key]} put in table: {collection}")
        return item

    async def fetch(self, collection: str, filters: Any = None) -> Documents:
        table = self._table(collection)
        params: Dict[str, Any] = dict(filters or {})
        operation = table.query if "KeyConditionExpression" in params else table.scan

        items: Documents = []
        while True:
            response = await asyncio.to_thread(operation, **params)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            params["ExclusiveStartKey"] = last_key

        return items
