"""Data access facade: cache-aside reads, cache-refreshing writes, passthrough fetches.

    facade = get_facade()
    user = await facade.get("users", "u1", CacheOptions(use_cache=True))
    await facade.set("users", "u1", {"name": "A"})
    orders = await facade.fetch("orders", {"status": "open"})

Storage failures always reach the caller as :class:`StorageError`. Cache
failures never do: they are logged and the operation continues as if the
cache had missed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Mapping, Optional, TypeVar

from .cache.engine import CacheEngine, get_cache, cleanup_cache
from .config.settings import Settings
from .db.base import Document, Documents, StorageBackend
from .db.engine import BackendSelector, get_selector, cleanup_selector
from .errors import StorageError
from .keys import LogicalKey, derive_cache_key

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _default_cache_expiry() -> int:
    return Settings.DEFAULT_CACHE_EXPIRY


@dataclass(frozen=True)
class CacheOptions:
    """Per-call cache configuration."""

    use_cache: bool = False
    cache_expiry: int = field(default_factory=_default_cache_expiry)


class DataAccessFacade:
    """Routes get/set/fetch to the configured storage backend.

    Both collaborators are injected; the module-level :func:`get_facade`
    builds them from settings.
    """

    def __init__(
        self,
        selector: BackendSelector,
        cache: Optional[CacheEngine] = None,
        default_cache_expiry: Optional[int] = None,
    ):
        """Initialize facade.

        Args:
            selector: Resolves the process-wide storage backend
            cache: Cache store; None disables caching entirely
            default_cache_expiry: TTL for cache refreshes after writes
                                  (defaults to DEFAULT_CACHE_EXPIRY)
        """
        self._selector = selector
        self._cache = cache
        self._default_cache_expiry = default_cache_expiry or Settings.DEFAULT_CACHE_EXPIRY

    @property
    def selector(self) -> BackendSelector:
        return self._selector

    @property
    def cache(self) -> Optional[CacheEngine]:
        return self._cache

    @property
    def default_cache_expiry(self) -> int:
        return self._default_cache_expiry

    async def _with_deadline(self, coro: Awaitable[T], timeout: Optional[float]) -> T:
        if timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout)

    async def get(
        self,
        collection: str,
        key: LogicalKey,
        options: Optional[CacheOptions] = None,
        timeout: Optional[float] = None,
    ) -> Optional[Document]:
        """Get a single document, optionally through the cache.

        Args:
            collection: Collection or table name
            key: Scalar identifier or composite key
            options: Cache settings for this call (caching is off by default)
            timeout: Deadline in seconds for the whole operation

        Returns:
            The document, or None if the backend has no matching record

        Raises:
            ConfigurationError: Unsupported backend type
            BackendInitError: Backend could not be initialized
            StorageError: Backend read failed
        """
        return await self._with_deadline(
            self._get(collection, key, options or CacheOptions()), timeout
        )

    async def _get(
        self, collection: str, key: LogicalKey, options: CacheOptions
    ) -> Optional[Document]:
        cache_key = None
        if options.use_cache:
            cache_key = await self._read_cache_key(collection, key)

        if cache_key is not None:
            cached = await self._cache_get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for key: {cache_key}")
                return cached
            logger.debug(f"Cache miss for key: {cache_key}")

        backend = await self._selector.resolve()
        doc = await self._storage_call("get", collection, backend.get(collection, key))

        if doc is not None and cache_key is not None:
            if await self._cache_set(cache_key, doc, options.cache_expiry):
                logger.debug(
                    f"Stored in cache with key: {cache_key} (expires in {options.cache_expiry}s)"
                )

        return doc

    async def set(
        self,
        collection: str,
        key_or_query: Optional[Any],
        data: Optional[Document] = None,
        timeout: Optional[float] = None,
    ) -> Document:
        """Create or update a document and refresh its cache entry.

        The cache is refreshed on every successful write, with the default
        TTL, whether or not reads of this entity use the cache.

        Args:
            collection: Collection or table name
            key_or_query: Document id or query; for item-oriented stores
                          (DynamoDB) None, with the key fields inside ``data``
            data: Fields to write, or the whole item
            timeout: Deadline in seconds for the whole operation

        Returns:
            The document as stored after the write

        Raises:
            ConfigurationError: Unsupported backend type
            BackendInitError: Backend could not be initialized
            StorageError: Backend write failed (the cache is left untouched)
        """
        return await self._with_deadline(self._set(collection, key_or_query, data), timeout)

    async def _set(
        self, collection: str, key_or_query: Optional[Any], data: Optional[Document]
    ) -> Document:
        backend = await self._selector.resolve()
        updated = await self._storage_call(
            "set", collection, backend.set(collection, key_or_query, data)
        )

        cache_key = self._post_write_cache_key(backend, collection, key_or_query, updated)
        if cache_key is None:
            logger.debug(f"No cache key derivable after write to {collection}; cache not refreshed")
        elif await self._cache_set(cache_key, updated, self._default_cache_expiry):
            logger.debug(
                f"Updated cache for key: {cache_key} (expires in {self._default_cache_expiry}s)"
            )

        return updated

    async def fetch(
        self,
        collection: str,
        filters: Any = None,
        timeout: Optional[float] = None,
    ) -> Documents:
        """Fetch documents with backend-specific filters. Never cached.

        ``filters`` is forwarded to the backend unchanged.
        """
        return await self._with_deadline(self._fetch(collection, filters), timeout)

    async def _fetch(self, collection: str, filters: Any) -> Documents:
        backend = await self._selector.resolve()
        return await self._storage_call("fetch", collection, backend.fetch(collection, filters))

    async def close(self) -> None:
        """Close the storage backend and the cache."""
        await self._selector.close()
        if self._cache is not None:
            await self._cache.close()

    async def _storage_call(self, operation: str, collection: str, coro: Awaitable[T]) -> T:
        try:
            return await coro
        except StorageError:
            raise
        except Exception as exc:
            logger.error(f"Storage {operation} failed on collection {collection}: {exc}")
            raise StorageError(
                f"{operation} on {collection} failed: {exc}",
                operation=operation,
                collection=collection,
            ) from exc

    async def _read_cache_key(self, collection: str, key: LogicalKey) -> Optional[str]:
        """Cache key for a read, or None when a mapping key is a query rather than an id."""
        if not isinstance(key, Mapping):
            return derive_cache_key(collection, key)

        # Writes refresh the entry under the backend's id field; match it
        backend = await self._selector.resolve()
        try:
            return derive_cache_key(collection, key, id_field=backend.id_field)
        except ValueError:
            logger.debug(f"Key {key!r} does not identify one {collection} entity; cache bypassed")
            return None

    def _post_write_cache_key(
        self,
        backend: StorageBackend,
        collection: str,
        key_or_query: Optional[Any],
        updated: Optional[Document],
    ) -> Optional[str]:
        """Cache key for a written document: its own id first, then the caller's key."""
        if isinstance(updated, dict) and updated.get(backend.id_field) is not None:
            try:
                return derive_cache_key(collection, updated[backend.id_field])
            except ValueError as exc:
                logger.debug(f"Written {collection} document has no usable identifier: {exc}")
        if key_or_query is not None:
            try:
                return derive_cache_key(collection, key_or_query, id_field=backend.id_field)
            except ValueError:
                # Queries that do not identify a single entity have no cache key
                return None
        return None

    async def _cache_get(self, cache_key: str) -> Optional[Any]:
        if self._cache is None:
            return None
        try:
            return await self._cache.get(cache_key)
        except Exception as exc:
            logger.warning(
                f"Cache get failed for key {cache_key}, treating as miss: {exc}",
                extra={"cache_key": cache_key, "operation": "get"},
            )
            return None

    async def _cache_set(self, cache_key: str, value: Any, ttl: int) -> bool:
        if self._cache is None:
            return False
        try:
            await self._cache.set(cache_key, value, ttl)
            return True
        except Exception as exc:
            logger.warning(
                f"Cache set failed for key {cache_key}: {exc}",
                extra={"cache_key": cache_key, "operation": "set"},
            )
            return False


# Global facade instance
_facade: Optional[DataAccessFacade] = None


def get_facade() -> DataAccessFacade:
    """Get the global facade, wired to the global selector and cache."""
    global _facade

    if _facade is None:
        _facade = DataAccessFacade(get_selector(), get_cache())
    return _facade


async def cleanup_facade() -> None:
    """Cleanup the global facade together with its selector and cache."""
    global _facade

    _facade = None
    await cleanup_selector()
    await cleanup_cache()
