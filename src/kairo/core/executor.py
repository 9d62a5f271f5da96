"""Executors run jobs under a shared error boundary.

An :class:`Executor` owns *how* a job is performed. Subclasses implement
:meth:`Executor.process`; everything around it (lifecycle events,
placeholders, cache-aside policies, retries with backoff, timeouts,
cooperative cancellation and outcome reporting) is handled here so every job
in the system behaves the same way.

Run pipeline for one job:

1. ``JobStartedEvent`` and ``observer.on_job_start``
2. placeholder, if the job has one
3. cache read: cache-first hits end the run, stale-while-revalidate hits
   resolve the handle and continue
4. attempt loop with retry/backoff, bounded by the job's timeout
5. cache write and the job's domain event, or one failure outcome
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, Protocol, TypeVar

from kairo.core.bus import EventBus, get_default_bus
from kairo.core.job import InvalidateCacheJob, Job, NetworkAction
from kairo.core.job_handle import JobHandle
from kairo.core.observer import JobObserver, notify_observer
from kairo.schemas.events import (
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
from kairo.schemas.types import CancellationToken, DataSource, JobProgress
from kairo.storage.cache import CacheProvider
from kairo.utils.errors import (
    JobCancelledError,
    JobFailedError,
    JobTimeoutError,
    PermanentFailure,
)
from kairo.utils.retry import RetryPolicy
from kairo.utils.telemetry import (
    async_performance_timer,
    get_logger,
    record_cache_lookup,
    record_job_outcome,
    record_retry,
)

J = TypeVar("J", bound=Job[Any])
R = TypeVar("R")

_NO_RETRY = RetryPolicy(max_retries=0)


class OfflineQueue(Protocol):
    async def enqueue(self, job: Job[Any]) -> None: ...


class Executor(ABC, Generic[J, R]):
    """Base class for job executors.

    Example:
        >>> class FetchUserExecutor(Executor[FetchUser, dict]):
        ...     async def process(self, job: FetchUser) -> dict:
        ...         return await api.get_user(job.user_id)
    """

    def __init__(
        self,
        bus: EventBus | None = None,
        cache: CacheProvider | None = None,
        observer: JobObserver | None = None,
        name: str | None = None,
        default_timeout: float | None = None,
        default_retry_policy: RetryPolicy | None = None,
    ):
        """Initialize executor.

        Args:
            bus: Bus to emit on (defaults to the process-wide default bus)
            cache: Cache provider for jobs with a cache policy
            observer: Observer notified of job lifecycle
            name: Name used in logs (defaults to the class name)
            default_timeout: Timeout for jobs that set none
            default_retry_policy: Retry policy for jobs that set none
        """
        self._bus = bus
        self.cache = cache
        self.observer = observer
        self.name = name or type(self).__name__
        self.default_timeout = default_timeout
        self.default_retry_policy = default_retry_policy

        self._tasks: set[asyncio.Task[Any]] = set()
        self._abandoned: set[asyncio.Task[Any]] = set()
        self._handles: dict[str, JobHandle[Any]] = {}
        self._logger = get_logger("kairo.executor", executor=self.name)

    @property
    def bus(self) -> EventBus:
        return self._bus if self._bus is not None else get_default_bus()

    @property
    def active_jobs(self) -> int:
        """Number of runs in flight, excluding abandoned timed-out calls."""
        return len(self._tasks)

    @abstractmethod
    async def process(self, job: J) -> R:
        """Perform the work described by ``job``.

        Raise ``TransientFailure`` for errors worth retrying and
        ``PermanentFailure`` for errors that are not. Long-running
        implementations should poll ``job.cancellation_token``.
        """

    def execute(self, job: J, handle: JobHandle[R] | None = None) -> JobHandle[R]:
        """Start running ``job`` and return its handle immediately.

        Must be called from a running event loop.

        Raises:
            JobAlreadyDispatchedError: If the job instance ran before
            BusClosedError: If no bus was given and the default bus is not
                initialized
        """
        bus = self.bus
        job.mark_dispatched()

        handle = handle if handle is not None else JobHandle(job.id)
        self._handles[job.id] = handle

        task = asyncio.create_task(
            self._run(job, handle, bus), name=f"kairo-job-{job.id}"
        )
        self._track(task, job.id)
        return handle

    def queue_offline(self, job: J, queue: OfflineQueue) -> JobHandle[R]:
        """Resolve ``job`` optimistically and hand it to an offline queue.

        The job is not marked as dispatched, so it can be replayed later.
        """
        if not isinstance(job, NetworkAction):
            raise TypeError(f"{type(job).__name__} is not a NetworkAction")

        bus = self.bus
        handle: JobHandle[R] = JobHandle(job.id)
        log = self._logger.bind(job_id=job.id, job_type=job.job_type)

        try:
            optimistic = job.create_optimistic_result()
            event = job.make_event(optimistic, DataSource.OPTIMISTIC)
        except Exception as e:
            self._fail(job, handle, bus, e, attempts=1, log=log)
            return handle

        bus.emit(event)
        handle.complete(optimistic, DataSource.OPTIMISTIC)
        record_job_outcome(job.job_type, "optimistic")
        log.info("Job queued while offline")

        task = asyncio.create_task(
            queue.enqueue(job), name=f"kairo-enqueue-{job.id}"
        )
        self._track(task, job.id, keep_handle=True)
        return handle

    def emit(self, event: Event) -> None:
        """Emit an event on this executor's bus."""
        self.bus.emit(event)

    def report_progress(
        self,
        job: Job[Any],
        value: float,
        message: str | None = None,
        current_step: int | None = None,
        total_steps: int | None = None,
    ) -> None:
        """Report progress for a running job.

        Call from inside :meth:`process`. Updates the handle's progress
        buffer and emits a ``JobProgressEvent``. A handle already resolved
        from the cache keeps its buffer, but the event is still emitted while
        the job revalidates. Reports for jobs not running here are ignored.
        """
        handle = self._handles.get(job.id)
        if handle is None:
            return

        progress = handle.report_progress(value, message, current_step, total_steps)
        if progress is None:
            progress = JobProgress(
                value=min(1.0, max(0.0, value)),
                message=message,
                current_step=current_step,
                total_steps=total_steps,
            )

        self.emit(
            JobProgressEvent(
                job.id,
                progress=progress.value,
                message=progress.message,
                current_step=progress.current_step,
                total_steps=progress.total_steps,
            )
        )

    async def invalidate_key(self, key: str) -> bool:
        """Remove one cache entry. Returns True if it existed."""
        if self.cache is None:
            return False
        return await self.cache.delete(key)

    async def invalidate_matching(self, predicate: Callable[[str], bool]) -> int:
        """Remove every cache entry whose key matches ``predicate``."""
        if self.cache is None:
            return 0
        return await self.cache.delete_matching(predicate)

    async def shutdown(self) -> None:
        """Cancel every running and abandoned task and wait for them."""
        tasks = [*self._tasks, *self._abandoned]
        for task in tasks:
            task.cancel()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._logger.info("Executor shut down", cancelled_tasks=len(tasks))

    # Task bookkeeping

    def _track(
        self, task: asyncio.Task[Any], job_id: str, keep_handle: bool = False
    ) -> None:
        self._tasks.add(task)

        def done(finished: asyncio.Task[Any]) -> None:
            self._tasks.discard(finished)
            if not keep_handle:
                self._handles.pop(job_id, None)
            if not finished.cancelled() and finished.exception() is not None:
                self._logger.error(
                    "Job task raised",
                    job_id=job_id,
                    exc_info=finished.exception(),
                )

        task.add_done_callback(done)

    def _abandon(self, task: asyncio.Task[Any]) -> None:
        self._abandoned.add(task)

        def done(finished: asyncio.Task[Any]) -> None:
            self._abandoned.discard(finished)
            # Retrieve the late outcome so it is not reported as unhandled.
            if not finished.cancelled():
                finished.exception()

        task.add_done_callback(done)

    # Pipeline

    async def _run(self, job: J, handle: JobHandle[R], bus: EventBus) -> None:
        log = self._logger.bind(job_id=job.id, job_type=job.job_type)

        try:
            async with async_performance_timer(
                "job_run",
                job_type=job.job_type,
                job_id=job.id,
                logger=log,
                tracer_name="kairo.executor",
            ) as timer:
                try:
                    timer.status = await self._run_pipeline(job, handle, bus, log)
                except Exception as e:
                    log.error("Job pipeline raised", exc_info=True)
                    timer.status = self._fail(job, handle, bus, e, attempts=1, log=log)
        except asyncio.CancelledError:
            handle.complete_error(JobCancelledError(job.id, "executor shut down"))
            raise

    async def _run_pipeline(
        self, job: J, handle: JobHandle[R], bus: EventBus, log: Any
    ) -> str:
        bus.emit(JobStartedEvent(job.id, job_type=job.job_type))
        notify_observer(self.observer, lambda o: o.on_job_start(job))

        if job.placeholder is not None:
            bus.emit(JobPlaceholderEvent(job.id, placeholder=job.placeholder))
            handle.update(job.placeholder, DataSource.OPTIMISTIC)

        cached = await self._read_cache(job, log)
        if cached is not None:
            policy = job.cache_policy
            assert policy is not None
            bus.emit(
                JobCacheHitEvent(
                    job.id, cache_key=policy.key, revalidating=policy.revalidate
                )
            )

            try:
                event = job.make_event(
                    cached, DataSource.CACHED, final=not policy.revalidate
                )
            except Exception as e:
                return self._fail(job, handle, bus, e, attempts=0, log=log)

            bus.emit(event)
            handle.complete(cached, DataSource.CACHED)

            if not policy.revalidate:
                notify_observer(
                    self.observer,
                    lambda o: o.on_job_success(job, cached, DataSource.CACHED),
                )
                record_job_outcome(job.job_type, "cached")
                return "cached"

            log.debug("Serving cached value while revalidating", cache_key=policy.key)

        return await self._attempt_loop(job, handle, bus, log)

    async def _read_cache(self, job: J, log: Any) -> Any | None:
        policy = job.cache_policy
        if policy is None or self.cache is None:
            return None
        if policy.force_refresh:
            record_cache_lookup("bypass")
            return None

        try:
            cached = await self.cache.read(policy.key)
        except Exception:
            record_cache_lookup("error")
            log.warning(
                "Cache read failed, treating as miss",
                cache_key=policy.key,
                exc_info=True,
            )
            return None

        record_cache_lookup("miss" if cached is None else "hit")
        return cached

    async def _attempt_loop(
        self, job: J, handle: JobHandle[R], bus: EventBus, log: Any
    ) -> str:
        policy = job.retry_policy or self.default_retry_policy or _NO_RETRY
        timeout = job.timeout if job.timeout is not None else self.default_timeout
        token = job.cancellation_token

        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout if timeout is not None else None
        attempt = 0

        while True:
            if token is not None and token.is_cancelled:
                return self._cancel(job, handle, bus, token.reason, log)

            remaining = None
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    assert timeout is not None
                    return self._time_out(
                        job, handle, bus, timeout, loop.time() - started, log
                    )

            call = asyncio.ensure_future(self._call_process(job))
            try:
                done, _ = await asyncio.wait({call}, timeout=remaining)
            except asyncio.CancelledError:
                call.cancel()
                raise

            if not done:
                assert timeout is not None
                self._abandon(call)
                return self._time_out(
                    job, handle, bus, timeout, loop.time() - started, log
                )

            if call.cancelled():
                return self._cancel(job, handle, bus, "process task cancelled", log)

            try:
                result = call.result()
            except JobCancelledError as e:
                return self._cancel(job, handle, bus, e.reason, log)
            except Exception as e:
                try:
                    retry = policy.can_retry(e, attempt)
                    delay = policy.get_delay(attempt) if retry else 0.0
                except Exception:
                    log.error("Retry policy raised", exc_info=True)
                    retry = False

                if not retry:
                    return self._fail(
                        job, handle, bus, e, attempts=attempt + 1, log=log
                    )

                bus.emit(
                    JobRetryingEvent(
                        job.id,
                        attempt=attempt + 1,
                        max_retries=policy.max_retries,
                        error_message=str(e),
                        delay=delay,
                    )
                )
                record_retry(job.job_type)
                log.info(
                    "Retrying job",
                    attempt=attempt + 1,
                    max_retries=policy.max_retries,
                    delay=delay,
                    error=str(e),
                )

                if deadline is not None and deadline - loop.time() <= delay:
                    # The deadline falls inside the backoff window.
                    await self._backoff(max(0.0, deadline - loop.time()), token)
                    if token is not None and token.is_cancelled:
                        return self._cancel(job, handle, bus, token.reason, log)
                    assert timeout is not None
                    return self._time_out(
                        job, handle, bus, timeout, loop.time() - started, log
                    )

                await self._backoff(delay, token)
                attempt += 1
                continue

            if token is not None and token.is_cancelled:
                return self._cancel(job, handle, bus, token.reason, log)

            return await self._succeed(job, handle, bus, result, attempt + 1, log)

    async def _call_process(self, job: J) -> R:
        result = self.process(job)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _backoff(self, delay: float, token: CancellationToken | None) -> None:
        # Ends early when the token is cancelled.
        if token is None:
            await asyncio.sleep(delay)
            return

        waiter = asyncio.ensure_future(token.wait_cancelled())
        try:
            await asyncio.wait({waiter}, timeout=delay)
        finally:
            waiter.cancel()

    async def _succeed(
        self,
        job: J,
        handle: JobHandle[R],
        bus: EventBus,
        result: R,
        attempts: int,
        log: Any,
    ) -> str:
        policy = job.cache_policy
        if policy is not None and result is not None and self.cache is not None:
            try:
                await self.cache.write(policy.key, result, policy.ttl)
            except Exception:
                log.warning("Cache write failed", cache_key=policy.key, exc_info=True)

        try:
            event = job.make_event(result, DataSource.FRESH)
        except Exception as e:
            return self._fail(job, handle, bus, e, attempts=attempts, log=log)

        bus.emit(event)
        handle.update(result, DataSource.FRESH)
        handle.complete(result, DataSource.FRESH)

        notify_observer(
            self.observer, lambda o: o.on_job_success(job, result, DataSource.FRESH)
        )
        record_job_outcome(job.job_type, "success")
        return "success"

    def _fail(
        self,
        job: J,
        handle: JobHandle[R],
        bus: EventBus,
        error: BaseException,
        attempts: int,
        log: Any,
    ) -> str:
        attempts = max(attempts, 1)
        failure = JobFailedError(job.id, error, attempts=attempts)
        log.warning("Job failed", attempts=attempts, exc_info=error)

        bus.emit(
            JobFailureEvent(
                job.id,
                error=failure,
                message=str(error) or type(error).__name__,
                was_retried=attempts > 1,
                attempts=attempts,
            )
        )
        handle.complete_error(failure)

        notify_observer(self.observer, lambda o: o.on_job_error(job, failure))
        record_job_outcome(job.job_type, "failure")
        return "failure"

    def _cancel(
        self,
        job: J,
        handle: JobHandle[R],
        bus: EventBus,
        reason: str | None,
        log: Any,
    ) -> str:
        error = JobCancelledError(job.id, reason)
        log.info("Job cancelled", reason=reason)

        bus.emit(JobCancelledEvent(job.id, reason=reason))
        handle.complete_error(error)

        notify_observer(self.observer, lambda o: o.on_job_error(job, error))
        record_job_outcome(job.job_type, "cancelled")
        return "cancelled"

    def _time_out(
        self,
        job: J,
        handle: JobHandle[R],
        bus: EventBus,
        timeout: float,
        elapsed: float,
        log: Any,
    ) -> str:
        error = JobTimeoutError(job.id, timeout, elapsed)
        log.warning("Job timed out", timeout=timeout, elapsed=elapsed)

        bus.emit(JobTimeoutEvent(job.id, timeout=timeout))
        handle.complete_error(error)

        notify_observer(self.observer, lambda o: o.on_job_error(job, error))
        record_job_outcome(job.job_type, "timeout")
        return "timeout"


class CacheJobExecutor(Executor[InvalidateCacheJob, int]):
    """Runs :class:`InvalidateCacheJob` against this executor's cache.

    Share the cache provider with the executors whose entries should be
    invalidated.
    """

    async def process(self, job: InvalidateCacheJob) -> int:
        if self.cache is None:
            raise PermanentFailure("No cache provider configured")

        removed = 0
        if job.key is not None:
            removed += int(await self.cache.delete(job.key))
        if job.prefix is not None:
            prefix = job.prefix
            removed += await self.cache.delete_matching(
                lambda key: key.startswith(prefix)
            )
        if job.predicate is not None:
            removed += await self.cache.delete_matching(job.predicate)

        self._logger.debug(
            "Cache invalidated", key=job.key, prefix=job.prefix, removed=removed
        )
        return removed
