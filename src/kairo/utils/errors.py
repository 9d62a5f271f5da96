"""Structured error types for the job engine.

This module provides the exception taxonomy used across dispatch, execution
and event routing. Every error carries a suggested recovery action so that
callers and observers can decide what to do without inspecting class names.
"""

from enum import Enum
from typing import Any


class RecoveryAction(Enum):
    """Recovery actions for error handling."""

    RETRY = "retry"
    RETRY_WITH_DELAY = "retry_with_delay"
    ABORT = "abort"
    DROP = "drop"
    RECONFIGURE = "reconfigure"


class OrchestrationError(Exception):
    """Base exception for engine errors."""

    def __init__(
        self, message: str, recovery_action: RecoveryAction = RecoveryAction.ABORT
    ):
        """Initialize orchestration error.

        Args:
            message: Error message
            recovery_action: Suggested recovery action
        """
        super().__init__(message)
        self.recovery_action = recovery_action


class TransientFailure(OrchestrationError):
    """Failure that may succeed if the job is attempted again.

    Raise this from ``Executor.process`` for network blips, lock contention
    and similar conditions.
    """

    def __init__(self, message: str):
        super().__init__(message, RecoveryAction.RETRY_WITH_DELAY)


class PermanentFailure(OrchestrationError):
    """Failure that will not go away by retrying.

    Raise this from ``Executor.process`` for validation errors, missing
    resources and similar conditions. Retry policies never retry it.
    """

    def __init__(self, message: str):
        super().__init__(message, RecoveryAction.ABORT)


class JobCancelledError(OrchestrationError):
    """Error raised when a job observes its cancellation token.

    Cancellation is cooperative and is not treated as an application
    error: it resolves the handle and emits a cancelled event, nothing more.
    """

    def __init__(self, job_id: str | None = None, reason: str | None = None):
        """Initialize cancellation error.

        Args:
            job_id: Identifier of the cancelled job, if known
            reason: Human-readable cancellation reason
        """
        self.job_id = job_id
        self.reason = reason

        message = "Operation was cancelled"
        if job_id:
            message = f"Job {job_id} was cancelled"
        if reason:
            message = f"{message}: {reason}"

        super().__init__(message, RecoveryAction.ABORT)


class JobTimeoutError(OrchestrationError):
    """Error raised when a job exceeds its timeout.

    The underlying call is abandoned, not interrupted, so side effects it
    already started are not rolled back.
    """

    def __init__(self, job_id: str, timeout: float, elapsed: float | None = None):
        """Initialize timeout error.

        Args:
            job_id: Identifier of the job that timed out
            timeout: Timeout threshold in seconds
            elapsed: Actual elapsed time in seconds
        """
        self.job_id = job_id
        self.timeout = timeout
        self.elapsed = elapsed

        message = f"Job {job_id} timed out after {timeout:.3f}s"
        if elapsed is not None:
            message = f"{message} (elapsed {elapsed:.3f}s)"

        super().__init__(message, RecoveryAction.ABORT)


class JobFailedError(OrchestrationError):
    """Boundary error wrapping an exception raised by user code.

    The original exception is available as ``cause`` and ``__cause__``; it is
    never delivered on the bus or to the caller on its own.
    """

    def __init__(self, job_id: str, cause: BaseException, attempts: int = 1):
        """Initialize job failure error.

        Args:
            job_id: Identifier of the failed job
            cause: Exception raised by the executor
            attempts: Number of attempts made before giving up
        """
        self.job_id = job_id
        self.cause = cause
        self.attempts = attempts

        message = (
            f"Job {job_id} failed after {attempts} attempt(s): "
            f"{type(cause).__name__}: {cause}"
        )

        recovery_action = (
            cause.recovery_action
            if isinstance(cause, OrchestrationError)
            else RecoveryAction.ABORT
        )
        super().__init__(message, recovery_action)
        self.__cause__ = cause


class ExecutorNotFoundError(OrchestrationError):
    """Error raised when a job is dispatched with no registered executor.

    This is a configuration error and is raised synchronously from
    ``Dispatcher.dispatch`` before any asynchronous work starts.
    """

    def __init__(self, job_type: type):
        self.job_type = job_type
        message = f"No executor registered for job type {job_type.__name__}"
        super().__init__(message, RecoveryAction.RECONFIGURE)


class JobAlreadyDispatchedError(OrchestrationError):
    """Error raised when the same job instance is executed twice."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(
            f"Job {job_id} has already been dispatched; create a new job instead",
            RecoveryAction.RECONFIGURE,
        )


class RateLimitedError(OrchestrationError):
    """Describes an event dropped by a rate limiter.

    This is never raised to handlers. The rate limiter builds it to log a
    consistent message when an event kind exceeds its per-window limit.
    """

    def __init__(self, event_type: str, count: int, limit: int):
        """Initialize rate limit error.

        Args:
            event_type: Name of the throttled event class
            count: Number of events of that kind seen in the window
            limit: Configured limit for that kind
        """
        self.event_type = event_type
        self.count = count
        self.limit = limit

        message = (
            f"Event {event_type} exceeded limit ({count} > {limit} per window); "
            f"dropping further {event_type} events to break a feedback loop"
        )

        super().__init__(message, RecoveryAction.DROP)


class BusClosedError(OrchestrationError):
    """Error raised when using an event bus that is closed or not initialized."""

    def __init__(self, message: str = "Event bus is closed"):
        super().__init__(message, RecoveryAction.RECONFIGURE)


def describe_error(error: BaseException | Any) -> str:
    """Map an error to a short human-readable message for application state.

    The message never contains class names or stack traces, so it is safe to
    show to end users.

    Args:
        error: Error raised while running a job, or any other object

    Returns:
        Human-readable description
    """
    if isinstance(error, JobFailedError):
        error = error.cause

    if isinstance(error, JobCancelledError):
        return "The operation was cancelled."
    if isinstance(error, (JobTimeoutError, TimeoutError)):
        return "The operation took too long and was stopped."
    if isinstance(error, TransientFailure):
        return f"A temporary problem occurred: {error}. Please try again."
    if isinstance(error, PermanentFailure):
        return str(error) or "The operation could not be completed."
    if isinstance(error, ExecutorNotFoundError):
        return "This action is not available right now."
    if isinstance(error, (ConnectionError, OSError)):
        return "A network problem occurred. Please check your connection."

    text = str(error).strip()
    return text or "Something went wrong."
