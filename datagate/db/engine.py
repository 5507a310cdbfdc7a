"""Backend selection and global instance management."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Union

from ..config.settings import Settings, parse_cluster_nodes
from ..errors import BackendInitError, ConfigurationError, DatagateError
from .base import BackendType, StorageBackend

logger = logging.getLogger(__name__)

BackendFactory = Callable[[], StorageBackend]


class BackendState(Enum):
    """Lifecycle of the process-wide storage backend."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


def _create_mongodb() -> StorageBackend:
    # Import here to avoid requiring pymongo for other backends
    from .mongo import MongoBackend

    return MongoBackend(uri=Settings.MONGODB_URI, database=Settings.MONGODB_DATABASE)


def _create_firestore() -> StorageBackend:
    from .firestore import FirestoreBackend

    return FirestoreBackend(
        project=Settings.FIRESTORE_PROJECT,
        credentials_path=Settings.GOOGLE_APPLICATION_CREDENTIALS,
    )


def _create_redis() -> StorageBackend:
    from .redis_store import RedisStoreBackend

    return RedisStoreBackend(
        redis_url=Settings.DATAGATE_STORE_REDIS_URL,
        cluster_nodes=parse_cluster_nodes(Settings.DATAGATE_STORE_REDIS_CLUSTER_NODES),
        password=Settings.REDIS_PASSWORD,
    )


def _create_dynamodb() -> StorageBackend:
    from .dynamodb import DynamoDBBackend

    return DynamoDBBackend(
        region=Settings.AWS_REGION,
        partition_key=Settings.DYNAMODB_PARTITION_KEY,
    )


BACKEND_FACTORIES: Dict[BackendType, BackendFactory] = {
    BackendType.MONGODB: _create_mongodb,
    BackendType.FIRESTORE: _create_firestore,
    BackendType.REDIS: _create_redis,
    BackendType.DYNAMODB: _create_dynamodb,
}


def parse_backend_type(value: Union[str, BackendType]) -> BackendType:
    """Map a configured identifier to a BackendType.

    Raises:
        ConfigurationError: If the identifier is not a known backend type
    """
    if isinstance(value, BackendType):
        return value
    try:
        return BackendType(str(value).strip().lower())
    except ValueError:
        supported = ", ".join(t.value for t in BackendType)
        raise ConfigurationError(
            f"Unsupported database type: {value!r}. Supported: {supported}"
        ) from None


class BackendSelector:
    """Resolves the configured backend type to one live backend per process.

    Initialization is single-flight: concurrent first callers share one
    construction attempt and all observe its outcome. After a failed attempt
    the next new caller retries once (``retry_failed_init=True``) or gets the
    recorded error again (``retry_failed_init=False``).
    """

    def __init__(
        self,
        backend_type: Optional[Union[str, BackendType]] = None,
        factories: Optional[Mapping[BackendType, BackendFactory]] = None,
        retry_failed_init: Optional[bool] = None,
    ):
        """Initialize backend selector.

        Args:
            backend_type: Backend identifier. If not provided,
                          uses the DATABASE_TYPE setting.
            factories: Registry of backend constructors (defaults to BACKEND_FACTORIES)
            retry_failed_init: Retry after a failed initialization instead of
                               re-raising the recorded error
        """
        self._configured_type = backend_type if backend_type is not None else Settings.DATABASE_TYPE
        self._factories = dict(factories if factories is not None else BACKEND_FACTORIES)
        self._retry_failed_init = (
            Settings.DATAGATE_INIT_RETRY if retry_failed_init is None else retry_failed_init
        )
        self._backend: Optional[StorageBackend] = None
        self._state = BackendState.UNINITIALIZED
        self._error: Optional[DatagateError] = None
        self._init_task: Optional["asyncio.Task[StorageBackend]"] = None

    @property
    def state(self) -> BackendState:
        return self._state

    @property
    def backend_type(self) -> str:
        """Configured backend identifier."""
        if isinstance(self._configured_type, BackendType):
            return self._configured_type.value
        return str(self._configured_type)

    @property
    def last_error(self) -> Optional[DatagateError]:
        return self._error

    def _recorded_error(self) -> DatagateError:
        if self._error is None:
            return BackendInitError(
                f"{self.backend_type} backend initialization failed",
                backend_type=self.backend_type,
            )
        return self._error

    async def resolve(self) -> StorageBackend:
        """Return the live backend, initializing it on first use.

        Callers share one initialization task. A caller that is cancelled or
        times out stops waiting, but the attempt carries on for the others.
        """
        if self._state is BackendState.READY and self._backend is not None:
            return self._backend

        if self._init_task is None:
            if self._state is BackendState.FAILED:
                if not self._retry_failed_init:
                    raise self._recorded_error()
                logger.info(f"Retrying {self.backend_type} backend initialization")
            self._init_task = asyncio.create_task(self._initialize())
            self._init_task.add_done_callback(_consume_task_result)

        return await asyncio.shield(self._init_task)

    async def _initialize(self) -> StorageBackend:
        self._state = BackendState.INITIALIZING
        try:
            backend_type = parse_backend_type(self._configured_type)
            factory = self._factories.get(backend_type)
            if factory is None:
                raise ConfigurationError(f"No backend registered for type: {backend_type.value}")
            backend = await self._construct(backend_type, factory)
        except asyncio.CancelledError:
            # Only close() cancels the shared attempt; nothing is recorded
            self._state = BackendState.UNINITIALIZED
            raise
        except DatagateError as exc:
            self._error = exc
            self._state = BackendState.FAILED
            logger.error(f"Storage backend initialization failed: {exc}")
            raise
        finally:
            self._init_task = None

        self._backend = backend
        self._error = None
        self._state = BackendState.READY
        logger.info(f"Storage backend initialized: {backend_type.value}")
        return backend

    async def _construct(self, backend_type: BackendType, factory: BackendFactory) -> StorageBackend:
        try:
            backend = factory()
        except ConfigurationError:
            raise
        except Exception as exc:
            raise BackendInitError(
                f"Failed to construct {backend_type.value} backend: {exc}",
                backend_type=backend_type.value,
            ) from exc

        try:
            await backend.initialize()
        except asyncio.CancelledError:
            await self._discard(backend)
            raise
        except ConfigurationError:
            await self._discard(backend)
            raise
        except Exception as exc:
            await self._discard(backend)
            raise BackendInitError(
                f"Failed to connect {backend_type.value} backend: {exc}",
                backend_type=backend_type.value,
            ) from exc

        return backend

    async def _discard(self, backend: StorageBackend) -> None:
        """Close a backend whose initialization did not complete."""
        try:
            await backend.close()
        except Exception as exc:
            logger.warning(f"Error closing partially initialized backend: {exc}")

    async def close(self) -> None:
        """Close the live backend and return to the uninitialized state."""
        task = self._init_task
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            # A task cancelled before it started never clears itself
            self._init_task = None

        backend, self._backend = self._backend, None
        self._error = None
        self._state = BackendState.UNINITIALIZED
        if backend:
            await backend.close()
            logger.info(f"Storage backend closed: {self.backend_type}")


def _consume_task_result(task: "asyncio.Task[StorageBackend]") -> None:
    # Mark the outcome retrieved when every caller stopped waiting
    if not task.cancelled():
        task.exception()


# Global selector instance
_selector: Optional[BackendSelector] = None


def get_selector() -> BackendSelector:
    """Get the global backend selector (the backend itself is built on first resolve)."""
    global _selector

    if _selector is None:
        _selector = BackendSelector()
    return _selector


async def cleanup_selector() -> None:
    """Cleanup the global backend selector."""
    global _selector

    if _selector:
        await _selector.close()
        _selector = None
