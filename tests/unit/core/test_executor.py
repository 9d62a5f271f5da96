"""Unit tests for the Executor run pipeline.

Tests cover lifecycle events, retries, timeouts, cancellation, cache-aside
policies, progress reporting and failure wrapping.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from kairo.core.bus import EventBus, init_default_bus, shutdown_default_bus
from kairo.core.executor import CacheJobExecutor, Executor
from kairo.core.job import InvalidateCacheJob, Job
from kairo.core.observer import JobObserver
from kairo.schemas.events import (
    CacheInvalidatedEvent,
    Event,
    JobCacheHitEvent,
    JobCancelledEvent,
    JobFailureEvent,
    JobPlaceholderEvent,
    JobProgressEvent,
    JobRetryingEvent,
    JobStartedEvent,
    JobTimeoutEvent,
)
from kairo.schemas.types import CachePolicy, CancellationToken, DataSource
from kairo.testing import EventCapture, FakeCacheProvider
from kairo.utils.errors import (
    BusClosedError,
    JobAlreadyDispatchedError,
    JobCancelledError,
    JobFailedError,
    JobTimeoutError,
    PermanentFailure,
    TransientFailure,
)
from kairo.utils.retry import RetryPolicy


@dataclass(frozen=True)
class UserFetched(Event):
    user: Any = field(default_factory=dict)


class FetchUser(Job[dict]):
    id_prefix = "fetch-user"

    def __init__(self, user_id: str, **kwargs):
        super().__init__(**kwargs)
        self.user_id = user_id

    def create_event(self, result: dict) -> Event:
        return UserFetched(self.id, user=result)


class ScriptedExecutor(Executor[FetchUser, dict]):
    """Executor returning or raising scripted outcomes in order."""

    def __init__(self, outcomes=None, delay: float = 0.0, **kwargs):
        super().__init__(**kwargs)
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.calls = 0

    async def process(self, job: FetchUser) -> dict:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else {"id": job.user_id}
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def fast_retries(max_retries: int = 3, **kwargs) -> RetryPolicy:
    return RetryPolicy(max_retries=max_retries, base_delay=0.01, **kwargs)


@pytest.fixture
def bus():
    bus = EventBus(name="executor-test")
    yield bus
    bus.close()


@pytest.fixture
def capture(bus):
    capture = EventCapture(bus)
    yield capture
    capture.close()


@pytest.fixture
def cache():
    return FakeCacheProvider()


class TestSuccessPath:
    """Test jobs that complete normally."""

    @pytest.mark.asyncio
    async def test_emits_started_then_domain_event(self, bus, capture):
        executor = ScriptedExecutor(bus=bus)
        job = FetchUser("u1")

        handle = executor.execute(job)
        result = await handle.result()

        assert result.data == {"id": "u1"}
        assert result.source is DataSource.FRESH
        assert capture.types() == [JobStartedEvent, UserFetched]

        started, fetched = capture.events
        assert started.job_type == "FetchUser"
        assert fetched.correlation_id == job.id
        assert fetched.source is DataSource.FRESH
        assert fetched.is_terminal

    @pytest.mark.asyncio
    async def test_execute_returns_before_process_runs(self, bus):
        executor = ScriptedExecutor(bus=bus)

        handle = executor.execute(FetchUser("u1"))

        assert not handle.is_completed
        assert executor.calls == 0
        assert executor.active_jobs == 1

        await handle.result()

    @pytest.mark.asyncio
    async def test_job_id_format(self):
        job = FetchUser("u1")

        prefix, _, suffix = job.id.rpartition("-")
        assert prefix == "fetch-user"
        assert len(suffix) == 32

    @pytest.mark.asyncio
    async def test_placeholder_emitted_before_result(self, bus, capture):
        executor = ScriptedExecutor(bus=bus)
        job = FetchUser("u1", placeholder={"id": "u1", "name": "..."})

        handle = executor.execute(job)
        await handle.result()

        assert capture.types() == [JobStartedEvent, JobPlaceholderEvent, UserFetched]
        placeholder = capture.of_type(JobPlaceholderEvent)[0]
        assert placeholder.placeholder == {"id": "u1", "name": "..."}
        assert placeholder.source is DataSource.OPTIMISTIC
        assert handle.latest.source is DataSource.FRESH

    @pytest.mark.asyncio
    async def test_sync_process_is_accepted(self, bus):
        class SyncExecutor(Executor[FetchUser, dict]):
            def process(self, job):
                return {"sync": True}

        handle = SyncExecutor(bus=bus).execute(FetchUser("u1"))

        assert (await handle.result()).data == {"sync": True}

    @pytest.mark.asyncio
    async def test_job_cannot_be_executed_twice(self, bus):
        executor = ScriptedExecutor(bus=bus)
        job = FetchUser("u1")
        await executor.execute(job).result()

        with pytest.raises(JobAlreadyDispatchedError):
            executor.execute(job)

    @pytest.mark.asyncio
    async def test_uses_default_bus(self):
        bus = init_default_bus()
        try:
            capture = EventCapture(bus)
            handle = ScriptedExecutor().execute(FetchUser("u1"))
            await handle.result()

            assert capture.types() == [JobStartedEvent, UserFetched]
        finally:
            shutdown_default_bus()

    @pytest.mark.asyncio
    async def test_missing_default_bus_raises(self):
        shutdown_default_bus()

        with pytest.raises(BusClosedError):
            ScriptedExecutor().execute(FetchUser("u1"))


class TestRetry:
    """Test retry with exponential backoff."""

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, bus, capture):
        executor = ScriptedExecutor(
            outcomes=[TransientFailure("blip"), TransientFailure("blip"), {"ok": 1}],
            bus=bus,
        )
        job = FetchUser("u1", retry_policy=fast_retries(3))

        result = await executor.execute(job).result()

        assert result.data == {"ok": 1}
        assert executor.calls == 3

        retries = capture.of_type(JobRetryingEvent)
        assert [r.attempt for r in retries] == [1, 2]
        assert [r.delay for r in retries] == [0.01, 0.02]
        assert all(r.max_retries == 3 for r in retries)
        assert retries[0].error_message == "blip"

    @pytest.mark.asyncio
    async def test_exhausted_retries_fail(self, bus, capture):
        errors = [TransientFailure(f"blip {i}") for i in range(3)]
        executor = ScriptedExecutor(outcomes=errors, bus=bus)
        job = FetchUser("u1", retry_policy=fast_retries(2))

        handle = executor.execute(job)
        with pytest.raises(JobFailedError) as exc_info:
            await handle.result()

        assert executor.calls == 3
        assert exc_info.value.cause is errors[2]
        assert exc_info.value.__cause__ is errors[2]
        assert exc_info.value.attempts == 3

        failure = capture.of_type(JobFailureEvent)[0]
        assert failure.was_retried
        assert failure.attempts == 3
        assert failure.message == "blip 2"
        assert failure.error is exc_info.value
        assert not capture.of_type(UserFetched)

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self, bus, capture):
        executor = ScriptedExecutor(outcomes=[PermanentFailure("bad input")], bus=bus)
        job = FetchUser("u1", retry_policy=fast_retries(5))

        with pytest.raises(JobFailedError):
            await executor.execute(job).result()

        assert executor.calls == 1
        assert not capture.of_type(JobRetryingEvent)
        assert not capture.of_type(JobFailureEvent)[0].was_retried

    @pytest.mark.asyncio
    async def test_predicate_excludes_errors(self, bus):
        policy = fast_retries(
            5, should_retry=lambda e, attempt: not isinstance(e, KeyError)
        )
        executor = ScriptedExecutor(outcomes=[KeyError("missing")], bus=bus)

        with pytest.raises(JobFailedError):
            await executor.execute(FetchUser("u1", retry_policy=policy)).result()

        assert executor.calls == 1

    @pytest.mark.asyncio
    async def test_no_policy_means_single_attempt(self, bus):
        executor = ScriptedExecutor(outcomes=[TransientFailure("blip")], bus=bus)

        with pytest.raises(JobFailedError):
            await executor.execute(FetchUser("u1")).result()

        assert executor.calls == 1

    @pytest.mark.asyncio
    async def test_default_retry_policy(self, bus):
        executor = ScriptedExecutor(
            outcomes=[TransientFailure("blip")],
            bus=bus,
            default_retry_policy=fast_retries(1),
        )

        result = await executor.execute(FetchUser("u1")).result()

        assert result.data == {"id": "u1"}
        assert executor.calls == 2


class TestTimeout:
    """Test job timeouts."""

    @pytest.mark.asyncio
    async def test_slow_job_times_out(self, bus, capture, cache):
        executor = ScriptedExecutor(delay=0.2, bus=bus, cache=cache)
        job = FetchUser("u1", timeout=0.05, cache_policy=CachePolicy("user:u1"))

        handle = executor.execute(job)
        with pytest.raises(JobTimeoutError) as exc_info:
            await handle.result()

        assert exc_info.value.timeout == 0.05
        timeout_event = capture.of_type(JobTimeoutEvent)[0]
        assert timeout_event.timeout == 0.05
        assert timeout_event.is_terminal

        # The abandoned call finishes later but its result is discarded.
        await asyncio.sleep(0.25)
        assert not capture.of_type(UserFetched)
        assert cache.writes == []
        assert executor.calls == 1

    @pytest.mark.asyncio
    async def test_timeout_not_retried(self, bus):
        executor = ScriptedExecutor(delay=0.2, bus=bus)
        job = FetchUser("u1", timeout=0.05, retry_policy=fast_retries(3))

        with pytest.raises(JobTimeoutError):
            await executor.execute(job).result()

        assert executor.calls == 1
        await executor.shutdown()

    @pytest.mark.asyncio
    async def test_timeout_covers_backoff(self, bus, capture):
        """Test that the deadline also bounds the wait between attempts."""
        executor = ScriptedExecutor(
            outcomes=[TransientFailure("blip")] * 5,
            bus=bus,
        )
        job = FetchUser(
            "u1", timeout=0.1, retry_policy=RetryPolicy(max_retries=5, base_delay=5.0)
        )

        with pytest.raises(JobTimeoutError):
            await asyncio.wait_for(executor.execute(job).result(), timeout=1.0)

        assert executor.calls == 1
        assert capture.types()[-1] is JobTimeoutEvent

    @pytest.mark.asyncio
    async def test_default_timeout(self, bus):
        executor = ScriptedExecutor(delay=0.2, bus=bus, default_timeout=0.05)

        with pytest.raises(JobTimeoutError):
            await executor.execute(FetchUser("u1")).result()

        await executor.shutdown()

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValueError, match="timeout"):
            FetchUser("u1", timeout=0)


class TestCancellation:
    """Test cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, bus, capture):
        token = CancellationToken()
        token.cancel("not needed")
        executor = ScriptedExecutor(bus=bus)

        handle = executor.execute(FetchUser("u1", cancellation_token=token))
        with pytest.raises(JobCancelledError) as exc_info:
            await handle.result()

        assert exc_info.value.reason == "not needed"
        assert executor.calls == 0
        assert capture.types() == [JobStartedEvent, JobCancelledEvent]
        assert capture.of_type(JobCancelledEvent)[0].reason == "not needed"

    @pytest.mark.asyncio
    async def test_cancelled_during_backoff(self, bus, capture):
        token = CancellationToken()
        executor = ScriptedExecutor(outcomes=[TransientFailure("blip")], bus=bus)
        job = FetchUser(
            "u1",
            cancellation_token=token,
            retry_policy=RetryPolicy(max_retries=3, base_delay=5.0),
        )

        handle = executor.execute(job)
        await capture.wait_for(JobRetryingEvent, timeout=1.0)
        token.cancel("user left")

        with pytest.raises(JobCancelledError):
            await asyncio.wait_for(handle.result(), timeout=1.0)

        assert executor.calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_after_success_discards_result(self, bus, capture, cache):
        token = CancellationToken()

        class CancellingExecutor(Executor[FetchUser, dict]):
            async def process(self, job):
                token.cancel("late")
                return {"id": job.user_id}

        executor = CancellingExecutor(bus=bus, cache=cache)
        job = FetchUser(
            "u1", cancellation_token=token, cache_policy=CachePolicy("user:u1")
        )

        with pytest.raises(JobCancelledError):
            await executor.execute(job).result()

        assert not capture.of_type(UserFetched)
        assert cache.writes == []

    @pytest.mark.asyncio
    async def test_process_observes_token(self, bus, capture):
        token = CancellationToken()

        class PollingExecutor(Executor[FetchUser, dict]):
            async def process(self, job):
                for _ in range(100):
                    job.cancellation_token.throw_if_cancelled()
                    await asyncio.sleep(0.01)
                return {}

        executor = PollingExecutor(bus=bus)
        handle = executor.execute(FetchUser("u1", cancellation_token=token))
        await asyncio.sleep(0.03)
        token.cancel("stop")

        with pytest.raises(JobCancelledError):
            await asyncio.wait_for(handle.result(), timeout=1.0)

        assert capture.of_type(JobCancelledEvent)[0].reason == "stop"
        assert not capture.of_type(JobFailureEvent)

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running_jobs(self, bus):
        executor = ScriptedExecutor(delay=5.0, bus=bus)
        handle = executor.execute(FetchUser("u1"))
        await asyncio.sleep(0)

        await executor.shutdown()

        with pytest.raises(JobCancelledError):
            await handle.result()
        assert executor.active_jobs == 0


class TestCaching:
    """Test cache-first, stale-while-revalidate and network-first policies."""

    @pytest.mark.asyncio
    async def test_miss_runs_and_writes(self, bus, capture, cache):
        executor = ScriptedExecutor(bus=bus, cache=cache)
        job = FetchUser("u1", cache_policy=CachePolicy("user:u1", ttl=60))

        result = await executor.execute(job).result()

        assert result.is_fresh
        assert cache.reads == ["user:u1"]
        assert cache.writes == [("user:u1", {"id": "u1"}, 60)]
        assert not capture.of_type(JobCacheHitEvent)

    @pytest.mark.asyncio
    async def test_cache_first_hit_skips_process(self, bus, capture):
        cache = FakeCacheProvider({"user:u1": {"id": "u1", "cached": True}})
        executor = ScriptedExecutor(bus=bus, cache=cache)
        job = FetchUser("u1", cache_policy=CachePolicy("user:u1", revalidate=False))

        result = await executor.execute(job).result()

        assert result.data == {"id": "u1", "cached": True}
        assert result.is_cached
        assert capture.types() == [JobStartedEvent, JobCacheHitEvent, UserFetched]

        fetched = capture.of_type(UserFetched)[0]
        assert fetched.source is DataSource.CACHED
        assert fetched.is_terminal

        await asyncio.sleep(0.01)
        assert executor.calls == 0
        assert cache.writes == []

    @pytest.mark.asyncio
    async def test_stale_while_revalidate(self, bus, capture):
        cache = FakeCacheProvider({"user:u1": {"v": "stale"}})
        executor = ScriptedExecutor(outcomes=[{"v": "fresh"}], bus=bus, cache=cache)
        job = FetchUser("u1", cache_policy=CachePolicy("user:u1", revalidate=True))

        handle = executor.execute(job)
        result = await handle.result()
        await capture.wait_for(UserFetched, lambda e: e.is_terminal, timeout=1.0)

        assert result.data == {"v": "stale"}
        assert result.is_cached
        assert handle.latest.data == {"v": "fresh"}
        assert handle.latest.is_fresh

        fetched = capture.of_type(UserFetched)
        assert [(e.user, e.source, e.is_terminal) for e in fetched] == [
            ({"v": "stale"}, DataSource.CACHED, False),
            ({"v": "fresh"}, DataSource.FRESH, True),
        ]
        assert capture.of_type(JobCacheHitEvent)[0].revalidating
        assert cache.data["user:u1"] == {"v": "fresh"}

    @pytest.mark.asyncio
    async def test_progress_during_revalidation(self, bus, capture):
        class RefreshExecutor(Executor[FetchUser, dict]):
            async def process(self, job):
                self.report_progress(job, 0.5, "halfway")
                return {"v": "fresh"}

        cache = FakeCacheProvider({"user:u1": {"v": "stale"}})
        executor = RefreshExecutor(bus=bus, cache=cache)
        job = FetchUser("u1", cache_policy=CachePolicy("user:u1", revalidate=True))

        handle = executor.execute(job)
        result = await handle.result()
        await capture.wait_for(UserFetched, lambda e: e.is_terminal, timeout=1.0)

        assert result.is_cached
        progress = capture.of_type(JobProgressEvent)
        assert [(p.progress, p.message) for p in progress] == [(0.5, "halfway")]
        assert progress[0].correlation_id == job.id
        assert handle.last_progress is None

    @pytest.mark.asyncio
    async def test_force_refresh_skips_read(self, bus, cache):
        cache.data["user:u1"] = {"v": "stale"}
        executor = ScriptedExecutor(outcomes=[{"v": "fresh"}], bus=bus, cache=cache)
        job = FetchUser("u1", cache_policy=CachePolicy("user:u1", force_refresh=True))

        result = await executor.execute(job).result()

        assert result.data == {"v": "fresh"}
        assert cache.reads == []
        assert cache.data["user:u1"] == {"v": "fresh"}

    @pytest.mark.asyncio
    async def test_read_error_treated_as_miss(self, bus, cache):
        cache.fail_reads = True
        executor = ScriptedExecutor(bus=bus, cache=cache)
        job = FetchUser("u1", cache_policy=CachePolicy("user:u1"))

        result = await executor.execute(job).result()

        assert result.is_fresh
        assert executor.calls == 1

    @pytest.mark.asyncio
    async def test_write_error_not_fatal(self, bus, cache):
        cache.fail_writes = True
        executor = ScriptedExecutor(bus=bus, cache=cache)
        job = FetchUser("u1", cache_policy=CachePolicy("user:u1"))

        result = await executor.execute(job).result()

        assert result.data == {"id": "u1"}

    @pytest.mark.asyncio
    async def test_none_result_not_cached(self, bus, cache):
        executor = ScriptedExecutor(outcomes=[None], bus=bus, cache=cache)
        job = FetchUser("u1", cache_policy=CachePolicy("user:u1"))

        result = await executor.execute(job).result()

        assert result.data is None
        assert cache.writes == []

    @pytest.mark.asyncio
    async def test_invalidate_helpers(self, bus):
        cache = FakeCacheProvider({"user:1": 1, "user:2": 2, "post:1": 3})
        executor = ScriptedExecutor(bus=bus, cache=cache)

        assert await executor.invalidate_key("user:1")
        assert not await executor.invalidate_key("user:1")
        assert await executor.invalidate_matching(lambda k: k.startswith("post:")) == 1
        assert cache.data == {"user:2": 2}

    @pytest.mark.asyncio
    async def test_invalidate_cache_job(self, bus, capture):
        cache = FakeCacheProvider({"user:1": 1, "user:2": 2, "post:1": 3})
        executor = CacheJobExecutor(bus=bus, cache=cache)

        result = await executor.execute(InvalidateCacheJob(prefix="user:")).result()

        assert result.data == 2
        assert cache.data == {"post:1": 3}
        event = capture.of_type(CacheInvalidatedEvent)[0]
        assert event.prefix == "user:"
        assert event.removed == 2

    def test_invalidate_cache_job_needs_selector(self):
        with pytest.raises(ValueError, match="key, prefix or predicate"):
            InvalidateCacheJob()


class TestFailureBoundary:
    """Test that raw errors never escape the executor."""

    @pytest.mark.asyncio
    async def test_raw_error_wrapped(self, bus, capture):
        error = ValueError("parse error")
        executor = ScriptedExecutor(outcomes=[error], bus=bus)

        with pytest.raises(JobFailedError) as exc_info:
            await executor.execute(FetchUser("u1")).result()

        assert exc_info.value.cause is error
        failure = capture.of_type(JobFailureEvent)[0]
        assert isinstance(failure.error, JobFailedError)
        assert failure.source is DataSource.FAILED
        assert not any(isinstance(e, ValueError) for e in capture.events)

    @pytest.mark.asyncio
    async def test_create_event_error_is_failure(self, bus, capture):
        class BrokenJob(FetchUser):
            def create_event(self, result):
                raise RuntimeError("cannot build event")

        executor = ScriptedExecutor(bus=bus)

        with pytest.raises(JobFailedError, match="cannot build event"):
            await executor.execute(BrokenJob("u1")).result()

        assert capture.types() == [JobStartedEvent, JobFailureEvent]

    @pytest.mark.asyncio
    async def test_exactly_one_terminal_event(self, bus, capture):
        executor = ScriptedExecutor(
            outcomes=[TransientFailure("a"), TransientFailure("b")], bus=bus
        )
        job = FetchUser("u1", retry_policy=fast_retries(1))

        with pytest.raises(JobFailedError):
            await executor.execute(job).result()

        terminal = [e for e in capture.for_job(job.id) if e.is_terminal]
        assert len(terminal) == 1

    @pytest.mark.asyncio
    async def test_raising_retry_predicate_fails_job(self, bus, capture):
        def predicate(error, attempt):
            raise ValueError("predicate bug")

        error = TransientFailure("flaky")
        executor = ScriptedExecutor(outcomes=[error, error, error], bus=bus)
        job = FetchUser("u1", retry_policy=fast_retries(2, should_retry=predicate))

        with pytest.raises(JobFailedError) as exc_info:
            await asyncio.wait_for(executor.execute(job).result(), timeout=1.0)

        assert exc_info.value.cause is error
        assert executor.calls == 1
        assert capture.types() == [JobStartedEvent, JobFailureEvent]

    @pytest.mark.asyncio
    async def test_raising_retry_delay_fails_job(self, bus, capture):
        class BrokenDelays(RetryPolicy):
            def get_delay(self, attempt):
                raise ArithmeticError("bad delay")

        executor = ScriptedExecutor(outcomes=[TransientFailure("flaky")], bus=bus)
        job = FetchUser("u1", retry_policy=BrokenDelays(max_retries=2))

        with pytest.raises(JobFailedError, match="flaky"):
            await asyncio.wait_for(executor.execute(job).result(), timeout=1.0)

        assert not capture.of_type(JobRetryingEvent)
        assert len(capture.of_type(JobFailureEvent)) == 1

    @pytest.mark.asyncio
    async def test_unexpected_pipeline_error_fails_handle(self, bus, capture):
        executor = ScriptedExecutor(bus=bus)

        async def broken_loop(job, handle, bus, log):
            raise RuntimeError("internal bug")

        executor._attempt_loop = broken_loop
        job = FetchUser("u1")

        with pytest.raises(JobFailedError, match="internal bug"):
            await asyncio.wait_for(executor.execute(job).result(), timeout=1.0)

        failure = capture.of_type(JobFailureEvent)[0]
        assert failure.correlation_id == job.id
        assert isinstance(failure.error.cause, RuntimeError)


class TestProgressAndObserver:
    """Test progress reporting and observer notifications."""

    @pytest.mark.asyncio
    async def test_report_progress(self, bus, capture):
        class StepExecutor(Executor[FetchUser, dict]):
            async def process(self, job):
                for step in range(1, 5):
                    self.report_progress(
                        job, step / 4, f"step {step}", current_step=step, total_steps=4
                    )
                return {}

        executor = StepExecutor(bus=bus)
        handle = executor.execute(FetchUser("u1"))
        await handle.result()

        progress = capture.of_type(JobProgressEvent)
        assert [p.progress for p in progress] == [0.25, 0.5, 0.75, 1.0]
        assert progress[-1].current_step == 4
        assert handle.last_progress.value == 1.0
        assert not any(p.is_terminal for p in progress)

    @pytest.mark.asyncio
    async def test_observer_notified(self, bus):
        class Recorder(JobObserver):
            def __init__(self):
                self.calls = []

            def on_job_start(self, job):
                self.calls.append("start")

            def on_job_success(self, job, result, source):
                self.calls.append(("success", source))

            def on_job_error(self, job, error):
                self.calls.append(("error", type(error)))

        recorder = Recorder()
        executor = ScriptedExecutor(
            outcomes=[{"ok": 1}, RuntimeError("x")], bus=bus, observer=recorder
        )

        await executor.execute(FetchUser("u1")).result()
        with pytest.raises(JobFailedError):
            await executor.execute(FetchUser("u2")).result()

        assert recorder.calls == [
            "start",
            ("success", DataSource.FRESH),
            "start",
            ("error", JobFailedError),
        ]

    @pytest.mark.asyncio
    async def test_failing_observer_is_isolated(self, bus):
        class Broken(JobObserver):
            def on_job_start(self, job):
                raise RuntimeError("observer bug")

        executor = ScriptedExecutor(bus=bus, observer=Broken())

        result = await executor.execute(FetchUser("u1")).result()

        assert result.data == {"id": "u1"}
