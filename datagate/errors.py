"""Error taxonomy for the data access layer."""

from __future__ import annotations

from typing import Optional


class DatagateError(Exception):
    """Base class for all datagate errors."""

    pass


class ConfigurationError(DatagateError):
    """Raised when the configured backend type is unsupported or misconfigured."""

    pass


class BackendInitError(DatagateError):
    """Raised when a storage backend cannot be constructed or connected."""

    def __init__(self, message: str, backend_type: Optional[str] = None):
        super().__init__(message)
        self.backend_type = backend_type


class StorageError(DatagateError):
    """Raised when a storage backend operation fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        collection: Optional[str] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.collection = collection


class CacheError(DatagateError):
    """Raised when a cache operation fails.

    The facade never lets this reach callers; it is logged and treated as a miss.
    """

    def __init__(self, message: str, operation: Optional[str] = None, key: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
        self.key = key
