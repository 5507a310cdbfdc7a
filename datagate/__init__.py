"""Backend-agnostic data access with an optional cache-aside layer."""

from .errors import BackendInitError, CacheError, ConfigurationError, DatagateError, StorageError
from .facade import CacheOptions, DataAccessFacade, cleanup_facade, get_facade
from .keys import CompositeKey, derive_cache_key

__version__ = "0.1.0"

__all__ = [
    "BackendInitError",
    "CacheError",
    "CacheOptions",
    "CompositeKey",
    "ConfigurationError",
    "DataAccessFacade",
    "DatagateError",
    "StorageError",
    "cleanup_facade",
    "derive_cache_key",
    "get_facade",
]
