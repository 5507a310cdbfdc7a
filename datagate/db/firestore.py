"""Firestore managed NoSQL backend."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .base import Document, Documents, StorageBackend
from ..keys import LogicalKey, key_identifier

logger = logging.getLogger(__name__)


class FirestoreBackend(StorageBackend):
    """Managed NoSQL store backed by google-cloud-firestore's AsyncClient.

    Filters for ``fetch`` are a list of ``{"field", "op", "value"}`` dicts,
    applied in order as ``where`` clauses.
    """

    id_field = "id"

    def __init__(
        self,
        project: Optional[str] = None,
        credentials_path: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        self._project = project
        self._credentials_path = credentials_path
        self._client = client

    async def initialize(self) -> None:
        """Create the Firestore client."""
        if self._client is not None:
            return

        from google.cloud import firestore

        if self._credentials_path:
            from google.oauth2 import service_account

            credentials = service_account.Credentials.from_service_account_file(
                self._credentials_path
            )
            self._client = firestore.AsyncClient(project=self._project, credentials=credentials)
        else:
            self._client = firestore.AsyncClient(project=self._project)

        logger.info(f"Firestore client initialized (project: {self._project or 'default'})")

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("Firestore client closed")

    def _document(self, collection: str, doc_id: Any) -> Any:
        if self._client is None:
            raise RuntimeError("Firestore not initialized")
        return self._client.collection(collection).document(str(doc_id))

    async def get(self, collection: str, key: LogicalKey) -> Optional[Document]:
        doc_id = key_identifier(key)
        snapshot = await self._document(collection, doc_id).get()
        if not snapshot.exists:
            logger.debug(f"No document found with ID: {doc_id} in collection: {collection}")
            return None
        return {"id": snapshot.id, **(snapshot.to_dict() or {})}

    async def set(
        self,
        collection: str,
        key: Optional[Any],
        data: Optional[Document] = None,
    ) -> Document:
        """Merge ``data`` into the document and return the stored result."""
        data = dict(data or {})
        doc_id = key_identifier(key) if key is not None else data.get("id")
        if doc_id is None:
            raise ValueError("Firestore set requires a document ID")

        data.pop("id", None)
        ref = self._document(collection, doc_id)
        await ref.set(data, merge=True)
        logger.debug(f"Document {doc_id} set in collection: {collection}")

        snapshot = await ref.get()
        return {"id": snapshot.id, **(snapshot.to_dict() or {})}

    async def fetch(self, collection: str, filters: Any = None) -> Documents:
        if self._client is None:
            raise RuntimeError("Firestore not initialized")

        query = self._client.collection(collection)
        for condition in filters or []:
            query = query.where(condition["field"], condition["op"], condition["value"])

        documents = []
        async for snapshot in query.stream():
            documents.append({"id": snapshot.id, **(snapshot.to_dict() or {})})

        if not documents:
            logger.debug(f"No matching documents found in collection: {collection}")
        return documents
