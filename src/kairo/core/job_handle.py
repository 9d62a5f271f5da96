"""Caller-side handle for a dispatched job."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from kairo.schemas.types import DataSource, JobProgress
from kairo.utils.telemetry import get_logger

R = TypeVar("R")

ProgressListener = Callable[[JobProgress], None]


class HandleState(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class JobHandleResult(Generic[R]):
    """Value a job handle resolved with, plus where it came from."""

    data: R
    source: DataSource

    @property
    def is_cached(self) -> bool:
        return self.source is DataSource.CACHED

    @property
    def is_fresh(self) -> bool:
        return self.source is DataSource.FRESH

    @property
    def is_optimistic(self) -> bool:
        return self.source is DataSource.OPTIMISTIC


class JobHandle(Generic[R]):
    """Single-assignment result of a dispatched job.

    The handle moves from ``PENDING`` to exactly one of ``COMPLETED`` or
    ``FAILED``; later completion calls are ignored. It also buffers the last
    progress report so a listener subscribing late is immediately brought up
    to date, and tracks the most recent non-terminal value in :attr:`latest`
    (placeholders, or the fresh value arriving after a stale-while-revalidate
    hit already resolved the handle).

    Handles are created by executors; callers only read them.
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        self._state = HandleState.PENDING
        self._result: JobHandleResult[R] | None = None
        self._error: BaseException | None = None
        self._done = asyncio.Event()
        self._last_progress: JobProgress | None = None
        self._latest: JobHandleResult[Any] | None = None
        self._progress_listeners: list[ProgressListener] = []
        self._logger = get_logger("kairo.job_handle", job_id=job_id)

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def is_completed(self) -> bool:
        """True once the handle resolved, successfully or not."""
        return self._state is not HandleState.PENDING

    @property
    def last_progress(self) -> JobProgress | None:
        return self._last_progress

    @property
    def latest(self) -> JobHandleResult[Any] | None:
        """Most recent value seen for this job, resolved or not."""
        return self._latest

    @property
    def error(self) -> BaseException | None:
        return self._error

    async def result(self) -> JobHandleResult[R]:
        """Wait for the job to resolve.

        Returns:
            The resolved value and its data source

        Raises:
            The error the handle failed with (``JobFailedError``,
            ``JobCancelledError`` or ``JobTimeoutError``)
        """
        await self._done.wait()
        if self._error is not None:
            raise self._error
        assert self._result is not None
        return self._result

    def complete(self, value: R, source: DataSource = DataSource.FRESH) -> bool:
        """Resolve the handle with a value.

        Returns:
            True if this call resolved the handle, False if it already was
        """
        if self.is_completed:
            return False

        self._result = JobHandleResult(value, source)
        self._latest = self._result
        self._state = HandleState.COMPLETED
        self._finish()
        return True

    def complete_error(self, error: BaseException) -> bool:
        """Fail the handle.

        Returns:
            True if this call resolved the handle, False if it already was
        """
        if self.is_completed:
            return False

        self._error = error
        self._state = HandleState.FAILED
        self._finish()
        return True

    def update(self, value: Any, source: DataSource) -> None:
        """Record a value without resolving the handle."""
        self._latest = JobHandleResult(value, source)

    def report_progress(
        self,
        value: float,
        message: str | None = None,
        current_step: int | None = None,
        total_steps: int | None = None,
    ) -> JobProgress | None:
        """Buffer a progress update and notify listeners.

        ``value`` is clamped to ``[0.0, 1.0]``. Reports after resolution are
        ignored.

        Returns:
            The buffered progress, or None if the report was ignored
        """
        if self.is_completed:
            return None

        progress = JobProgress(
            value=min(1.0, max(0.0, value)),
            message=message,
            current_step=current_step,
            total_steps=total_steps,
        )
        self._last_progress = progress

        for listener in list(self._progress_listeners):
            self._notify(listener, progress)

        return progress

    def on_progress(self, listener: ProgressListener) -> Callable[[], None]:
        """Listen for progress updates.

        The last buffered progress, if any, is delivered immediately.

        Returns:
            Callable that removes the listener
        """
        if self._last_progress is not None:
            self._notify(listener, self._last_progress)

        if self.is_completed:
            return lambda: None

        self._progress_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._progress_listeners:
                self._progress_listeners.remove(listener)

        return unsubscribe

    def _notify(self, listener: ProgressListener, progress: JobProgress) -> None:
        try:
            listener(progress)
        except Exception:
            self._logger.exception("Progress listener failed")

    def _finish(self) -> None:
        self._progress_listeners.clear()
        self._done.set()

    def __repr__(self) -> str:
        return f"JobHandle(job_id={self.job_id}, state={self._state.value})"
