"""Base storage abstractions for multi-backend support."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

from ..keys import LogicalKey

logger = logging.getLogger(__name__)

# Type for stored documents
Document = Dict[str, Any]
Documents = List[Document]


class BackendType(Enum):
    """Supported storage backends."""

    MONGODB = "mongodb"  # document store
    FIRESTORE = "firestore"  # managed NoSQL
    REDIS = "redis"  # key-value cluster used as primary store
    DYNAMODB = "dynamodb"  # wide-column store


class StorageBackend(ABC):
    """Abstract base class for storage backends.

    Implementations must be safe for concurrent use by many asyncio tasks,
    since a single instance is shared across the process.
    """

    # Field of returned documents that holds the entity identifier
    id_field: str = "id"

    @abstractmethod
    async def initialize(self) -> None:
        """Connect to the store."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release connections and cleanup resources."""
        ...

    @abstractmethod
    async def get(self, collection: str, key: LogicalKey) -> Optional[Document]:
        """Get a single document.

        Args:
            collection: Collection or table name
            key: Scalar identifier or composite key

        Returns:
            The document, or None if no record matches
        """
        ...

    @abstractmethod
    async def set(
        self,
        collection: str,
        key: Optional[Any],
        data: Optional[Document] = None,
    ) -> Document:
        """Create or update a document.

        Args:
            collection: Collection or table name
            key: Identifier or query of the document. Item-oriented stores
                 accept None and read the key fields from ``data``.
            data: Fields to write

        Returns:
            The document as stored after the write
        """
        ...

    @abstractmethod
    async def fetch(self, collection: str, filters: Any = None) -> Documents:
        """Fetch documents matching backend-specific filters.

        Args:
            collection: Collection or table name
            filters: Backend-specific filter object, passed through unchanged

        Returns:
            Matching documents (empty list if none)
        """
        ...


def sanitize_connection_string(conn_str: str) -> str:
    """Remove password from connection string for logging."""
    # Match patterns like :password@ and replace password
    return re.sub(r":([^:@/]+)@", r":***@", conn_str)
