import asyncio

import pytest

from datagate.config.settings import Settings
from datagate.db.base import BackendType
from datagate.db.engine import (
    BACKEND_FACTORIES,
    BackendSelector,
    BackendState,
    cleanup_selector,
    get_selector,
    parse_backend_type,
)
from datagate.errors import BackendInitError, ConfigurationError

from conftest import RecordingBackend


class CountingFactory:
    """Backend factory that counts constructions."""

    def __init__(self, backend=None, fail_init=None, fail_construct=None):
        self.calls = 0
        self.backend = backend
        self.fail_init = fail_init
        self.fail_construct = fail_construct
        self.built = []

    def __call__(self):
        self.calls += 1
        if self.fail_construct is not None:
            raise self.fail_construct
        backend = self.backend or RecordingBackend(init_delay=0.01)
        if self.fail_init is not None:
            error = self.fail_init

            async def failing_initialize():
                await asyncio.sleep(0.01)
                raise error

            backend.initialize = failing_initialize
        self.built.append(backend)
        return backend


def make_selector(factory, backend_type=BackendType.MONGODB, retry=True):
    return BackendSelector(
        backend_type=backend_type,
        factories={backend_type: factory},
        retry_failed_init=retry,
    )


class TestParseBackendType:
    """Test backend identifier parsing."""

    @pytest.mark.parametrize("value", ["mongodb", "firestore", "redis", "dynamodb"])
    def test_known_types(self, value):
        assert parse_backend_type(value).value == value

    def test_case_and_whitespace_insensitive(self):
        assert parse_backend_type(" DynamoDB ") is BackendType.DYNAMODB

    def test_unknown_type_raises_configuration_error(self):
        with pytest.raises(ConfigurationError, match="unsupported-type"):
            parse_backend_type("unsupported-type")

    def test_registry_covers_every_type(self):
        assert set(BACKEND_FACTORIES) == set(BackendType)


class TestResolve:
    """Test single-flight backend resolution."""

    @pytest.mark.asyncio
    async def test_first_resolve_initializes(self):
        factory = CountingFactory()
        selector = make_selector(factory)

        assert selector.state is BackendState.UNINITIALIZED
        backend = await selector.resolve()

        assert selector.state is BackendState.READY
        assert backend.initialized is True
        assert factory.calls == 1

    @pytest.mark.asyncio
    async def test_ready_returns_same_handle(self):
        factory = CountingFactory()
        selector = make_selector(factory)

        first = await selector.resolve()
        second = await selector.resolve()

        assert first is second
        assert factory.calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_construct_once(self):
        factory = CountingFactory()
        selector = make_selector(factory)

        results = await asyncio.gather(*(selector.resolve() for _ in range(50)))

        assert factory.calls == 1
        assert all(result is results[0] for result in results)

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_init_failure(self):
        factory = CountingFactory(fail_init=ConnectionError("connection refused"))
        selector = make_selector(factory, retry=True)

        results = await asyncio.gather(
            *(selector.resolve() for _ in range(50)), return_exceptions=True
        )

        assert factory.calls == 1
        assert all(isinstance(result, BackendInitError) for result in results)
        assert all(result is results[0] for result in results)
        assert selector.state is BackendState.FAILED
        assert isinstance(results[0].__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_unsupported_type_never_constructs(self):
        factory = CountingFactory()
        selector = BackendSelector(
            backend_type="unsupported-type",
            factories={BackendType.MONGODB: factory},
        )

        for _ in range(3):
            with pytest.raises(ConfigurationError):
                await selector.resolve()

        assert factory.calls == 0
        assert selector.state is BackendState.FAILED

    @pytest.mark.asyncio
    async def test_unregistered_type_raises_configuration_error(self):
        factory = CountingFactory()
        selector = BackendSelector(
            backend_type=BackendType.DYNAMODB,
            factories={BackendType.MONGODB: factory},
        )

        with pytest.raises(ConfigurationError, match="No backend registered"):
            await selector.resolve()
        assert factory.calls == 0

    @pytest.mark.asyncio
    async def test_construction_failure_raises_backend_init_error(self):
        factory = CountingFactory(fail_construct=RuntimeError("bad credentials"))
        selector = make_selector(factory)

        with pytest.raises(BackendInitError) as exc_info:
            await selector.resolve()

        assert exc_info.value.backend_type == "mongodb"
        assert selector.last_error is exc_info.value

    @pytest.mark.asyncio
    async def test_failed_initialize_closes_partial_backend(self):
        factory = CountingFactory(fail_init=ConnectionError("timeout"))
        selector = make_selector(factory)

        with pytest.raises(BackendInitError):
            await selector.resolve()

        assert factory.built[0].closed is True


class TestFailurePolicy:
    """Test behaviour after a failed initialization."""

    @pytest.mark.asyncio
    async def test_retry_after_failure(self):
        factory = CountingFactory(fail_init=ConnectionError("transient"))
        selector = make_selector(factory, retry=True)

        with pytest.raises(BackendInitError):
            await selector.resolve()

        factory.fail_init = None
        backend = await selector.resolve()

        assert factory.calls == 2
        assert selector.state is BackendState.READY
        assert backend.initialized is True
        assert selector.last_error is None

    @pytest.mark.asyncio
    async def test_no_retry_reraises_recorded_error(self):
        factory = CountingFactory(fail_init=ConnectionError("down"))
        selector = make_selector(factory, retry=False)

        with pytest.raises(BackendInitError) as first:
            await selector.resolve()

        factory.fail_init = None
        with pytest.raises(BackendInitError) as second:
            await selector.resolve()

        assert second.value is first.value
        assert factory.calls == 1

    @pytest.mark.asyncio
    async def test_retry_policy_defaults_from_settings(self):
        Settings.DATAGATE_INIT_RETRY = False
        selector = BackendSelector(backend_type=BackendType.MONGODB, factories={})
        with pytest.raises(ConfigurationError):
            await selector.resolve()
        assert selector._retry_failed_init is False

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_restart_attempt(self):
        factory = CountingFactory(backend=RecordingBackend(init_delay=0.05))
        selector = make_selector(factory)

        impatient = asyncio.create_task(selector.resolve())
        patient = asyncio.create_task(selector.resolve())
        await asyncio.sleep(0.01)
        impatient.cancel()
        with pytest.raises(asyncio.CancelledError):
            await impatient

        backend = await patient
        assert backend.initialized is True
        assert factory.calls == 1

    @pytest.mark.asyncio
    async def test_caller_timeout_leaves_attempt_running(self):
        factory = CountingFactory(backend=RecordingBackend(init_delay=0.05))
        selector = make_selector(factory)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(selector.resolve(), timeout=0.01)

        backend = await selector.resolve()
        assert backend.initialized is True
        assert factory.calls == 1

    @pytest.mark.asyncio
    async def test_close_during_initialization_allows_fresh_attempt(self):
        factory = CountingFactory(backend=RecordingBackend(init_delay=10))
        selector = make_selector(factory)

        task = asyncio.create_task(selector.resolve())
        await asyncio.sleep(0.01)
        await selector.close()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert selector.state is BackendState.UNINITIALIZED
        assert factory.built[0].closed is True

        factory.backend = RecordingBackend()
        backend = await selector.resolve()
        assert backend.initialized is True
        assert factory.calls == 2

    @pytest.mark.asyncio
    async def test_close_before_attempt_starts(self):
        factory = CountingFactory()
        selector = make_selector(factory)

        task = asyncio.create_task(selector.resolve())
        await asyncio.sleep(0)
        await selector.close()
        with pytest.raises(asyncio.CancelledError):
            await task

        backend = await selector.resolve()
        assert backend.initialized is True

    @pytest.mark.asyncio
    async def test_failed_state_without_recorded_error_still_raises(self):
        selector = make_selector(CountingFactory(), retry=False)
        selector._state = BackendState.FAILED

        with pytest.raises(BackendInitError) as exc_info:
            await selector.resolve()
        assert exc_info.value.backend_type == "mongodb"


class TestLifecycle:
    """Test closing and global instance management."""

    @pytest.mark.asyncio
    async def test_close_resets_state(self):
        factory = CountingFactory()
        selector = make_selector(factory)
        backend = await selector.resolve()

        await selector.close()

        assert backend.closed is True
        assert selector.state is BackendState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_global_selector_uses_settings(self):
        Settings.DATABASE_TYPE = "dynamodb"
        selector = get_selector()

        assert selector is get_selector()
        assert selector.backend_type == "dynamodb"

        await cleanup_selector()
        assert get_selector() is not selector

    @pytest.mark.asyncio
    async def test_global_selector_unsupported_type(self):
        Settings.DATABASE_TYPE = "unsupported-type"
        with pytest.raises(ConfigurationError):
            await get_selector().resolve()
