"""Pytest configuration and fixtures for datagate tests."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import pytest

from datagate.cache import CacheEngine, MemoryCacheBackend
from datagate.config.settings import Settings
from datagate.db.base import BackendType, StorageBackend
from datagate.db.engine import BackendSelector
from datagate.facade import DataAccessFacade
from datagate.keys import key_identifier


class RecordingBackend(StorageBackend):
    """Dict-backed storage backend that records every call."""

    id_field = "id"

    def __init__(self, init_delay: float = 0.0):
        self.init_delay = init_delay
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.initialized = False
        self.closed = False
        self.fetch_result: Optional[List[Dict[str, Any]]] = None
        self.fail_with: Optional[Exception] = None

    async def initialize(self) -> None:
        if self.init_delay:
            await asyncio.sleep(self.init_delay)
        self.initialized = True

    async def close(self) -> None:
        self.closed = True

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def get(self, collection, key):
        self.calls.append(("get", collection, key))
        self._check()
        doc = self.documents.get(f"{collection}:{key_identifier(key)}")
        return dict(doc) if doc is not None else None

    async def set(self, collection, key, data=None):
        self.calls.append(("set", collection, key, data))
        self._check()
        data = dict(data or {})
        doc_id = key_identifier(key) if key is not None else data[self.id_field]
        doc = {**self.documents.get(f"{collection}:{doc_id}", {}), **data, self.id_field: doc_id}
        self.documents[f"{collection}:{doc_id}"] = doc
        return dict(doc)

    async def fetch(self, collection, filters=None):
        self.calls.append(("fetch", collection, filters))
        self._check()
        if self.fetch_result is not None:
            return self.fetch_result
        return [dict(d) for k, d in self.documents.items() if k.startswith(f"{collection}:")]

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)


class RecordingCache(MemoryCacheBackend):
    """Memory cache that records calls and can be told to fail."""

    def __init__(self):
        super().__init__(max_size=100)
        self.calls: List[tuple] = []
        self.fail_get = False
        self.fail_set = False

    async def get(self, key):
        self.calls.append(("get", key))
        if self.fail_get:
            raise ConnectionError("cache node unreachable")
        return await super().get(key)

    async def set(self, key, value, ttl=None):
        self.calls.append(("set", key, value, ttl))
        if self.fail_set:
            raise ConnectionError("cache node unreachable")
        await super().set(key, value, ttl)


@pytest.fixture(autouse=True)
def restore_settings():
    """Keep Settings mutations local to a test."""
    saved = {name: getattr(Settings, name) for name in vars(Settings) if name.isupper()}
    yield
    for name, value in saved.items():
        setattr(Settings, name, value)


@pytest.fixture(autouse=True)
def reset_globals():
    """Drop process-wide selector, cache and facade between tests."""
    import datagate.cache.engine as cache_engine
    import datagate.db.engine as db_engine
    import datagate.facade as facade_module

    yield
    facade_module._facade = None
    db_engine._selector = None
    cache_engine._cache = None


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def selector(backend):
    return BackendSelector(
        backend_type=BackendType.FIRESTORE,
        factories={BackendType.FIRESTORE: lambda: backend},
    )


@pytest.fixture
def recording_cache():
    return RecordingCache()


@pytest.fixture
def facade(selector, recording_cache):
    return DataAccessFacade(
        selector, CacheEngine(backend=recording_cache), default_cache_expiry=3600
    )


# Keep driver logs quiet during tests
logging.getLogger("datagate").setLevel(logging.WARNING)
