"""Event definitions broadcast on the event bus.

Domain events are defined by applications as frozen dataclasses deriving from
:class:`Event`. The framework events below describe a job's lifecycle and its
non-success outcomes. Every event carries the ``correlation_id`` of the job
that produced it so orchestrators can route it back to its issuer.
"""

import time
from dataclasses import dataclass, field
from typing import Any

from kairo.schemas.types import DataSource
from kairo.utils.errors import JobFailedError


@dataclass(frozen=True)
class Event:
    """Base class for everything emitted on an event bus.

    Attributes:
        correlation_id: Id of the job that caused this event
        timestamp: Wall-clock time of creation
        source: Where the carried data came from
        final: False when more events for the same job will follow (for
            example the cached value emitted before revalidation)
    """

    correlation_id: str
    timestamp: float = field(default_factory=time.time, kw_only=True)
    source: DataSource = field(default=DataSource.FRESH, kw_only=True)
    final: bool = field(default=True, kw_only=True)

    @property
    def is_terminal(self) -> bool:
        """Whether this event ends its job's lifecycle."""
        return self.final

    @property
    def event_type(self) -> str:
        return type(self).__name__


# Lifecycle events


@dataclass(frozen=True)
class JobStartedEvent(Event):
    """Emitted when an executor begins running a job."""

    job_type: str

    @property
    def is_terminal(self) -> bool:
        return False


@dataclass(frozen=True)
class JobPlaceholderEvent(Event):
    """Emitted with a job's placeholder before any real data is available."""

    placeholder: Any
    source: DataSource = field(default=DataSource.OPTIMISTIC, kw_only=True)

    @property
    def is_terminal(self) -> bool:
        return False


@dataclass(frozen=True)
class JobCacheHitEvent(Event):
    """Emitted when a job's result was found in the cache."""

    cache_key: str
    revalidating: bool = False
    source: DataSource = field(default=DataSource.CACHED, kw_only=True)

    @property
    def is_terminal(self) -> bool:
        return False


@dataclass(frozen=True)
class JobProgressEvent(Event):
    """Emitted when a running job reports progress."""

    progress: float
    message: str | None = None
    current_step: int | None = None
    total_steps: int | None = None

    @property
    def is_terminal(self) -> bool:
        return False


@dataclass(frozen=True)
class JobRetryingEvent(Event):
    """Emitted before waiting to retry a failed attempt.

    Attributes:
        attempt: 1-based number of the retry about to happen
        max_retries: Retry limit from the job's policy
        error_message: Message of the error that caused the retry
        delay: Seconds to wait before the retry
    """

    attempt: int
    max_retries: int
    error_message: str
    delay: float

    @property
    def is_terminal(self) -> bool:
        return False


# Terminal outcome events


@dataclass(frozen=True)
class JobFailureEvent(Event):
    """Emitted when a job fails for good.

    The raw exception raised by the executor is only reachable through
    ``error.cause``.
    """

    error: JobFailedError
    message: str
    was_retried: bool = False
    attempts: int = 1
    source: DataSource = field(default=DataSource.FAILED, kw_only=True)

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class JobCancelledEvent(Event):
    """Emitted when a job stops because its cancellation token fired."""

    reason: str | None = None
    source: DataSource = field(default=DataSource.FAILED, kw_only=True)

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class JobTimeoutEvent(Event):
    """Emitted when a job exceeds its timeout."""

    timeout: float
    source: DataSource = field(default=DataSource.FAILED, kw_only=True)

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class CacheInvalidatedEvent(Event):
    """Domain event produced by ``InvalidateCacheJob``.

    Attributes:
        key: Exact key that was invalidated, if any
        prefix: Key prefix that was invalidated, if any
        removed: Number of entries removed
    """

    key: str | None = None
    prefix: str | None = None
    removed: int = 0
