"""Job descriptors.

A :class:`Job` describes *what* must happen. It carries the configuration the
engine needs to run it (timeout, retries, caching, cancellation) and knows how
to turn its result into a domain event, but it never performs the work.
"""

import dataclasses
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from kairo.schemas.events import CacheInvalidatedEvent, Event
from kairo.schemas.types import CachePolicy, CancellationToken, DataSource
from kairo.utils.errors import JobAlreadyDispatchedError
from kairo.utils.retry import RetryPolicy

R = TypeVar("R")


def generate_job_id(prefix: str = "job") -> str:
    """Generate a unique job id of the form ``"{prefix}-{uuid4 hex}"``."""
    return f"{prefix}-{uuid.uuid4().hex}"


class Job(ABC, Generic[R]):
    """Base class for work descriptors.

    Subclasses add their own parameters and implement :meth:`create_event`.
    The id is generated once at construction and never changes; it is the
    correlation id of every event the job produces.

    A job instance is consumed by its first execution. Dispatch a new
    instance to run the same work again.

    Example:
        >>> class FetchUser(Job[dict]):
        ...     def __init__(self, user_id: str, **kwargs):
        ...         super().__init__(**kwargs)
        ...         self.user_id = user_id
        ...
        ...     def create_event(self, result: dict) -> Event:
        ...         return UserFetched(self.id, user=result)
    """

    id_prefix = "job"

    def __init__(
        self,
        *,
        timeout: float | None = None,
        cancellation_token: CancellationToken | None = None,
        retry_policy: RetryPolicy | None = None,
        cache_policy: CachePolicy | None = None,
        placeholder: Any = None,
        metadata: dict[str, Any] | None = None,
        id_prefix: str | None = None,
    ):
        """Initialize job configuration.

        Args:
            timeout: Seconds allowed for the whole run including retries
            cancellation_token: Token checked cooperatively while running
            retry_policy: Retry configuration (None runs a single attempt)
            cache_policy: Cache-aside configuration
            placeholder: Value to show before any real data is available
            metadata: Free-form data for observers and logging
            id_prefix: Overrides the class-level ``id_prefix``
        """
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")

        self._id = generate_job_id(id_prefix or self.id_prefix)
        self.timeout = timeout
        self.cancellation_token = cancellation_token
        self.retry_policy = retry_policy
        self.cache_policy = cache_policy
        self.placeholder = placeholder
        self.metadata: dict[str, Any] = dict(metadata or {})
        self._dispatched = False

    @property
    def id(self) -> str:
        return self._id

    @property
    def job_type(self) -> str:
        return type(self).__name__

    @property
    def is_dispatched(self) -> bool:
        """Whether an executor has already taken this job."""
        return self._dispatched

    def mark_dispatched(self) -> None:
        """Record that an executor took this job.

        Raises:
            JobAlreadyDispatchedError: If the job was dispatched before
        """
        if self._dispatched:
            raise JobAlreadyDispatchedError(self._id)
        self._dispatched = True

    @abstractmethod
    def create_event(self, result: R) -> Event:
        """Build the domain event describing a successful result."""

    def make_event(
        self,
        result: R,
        source: DataSource = DataSource.FRESH,
        final: bool = True,
    ) -> Event:
        """Build the domain event and stamp it with its data source.

        Do not override; customize :meth:`create_event` instead.
        """
        event = self.create_event(result)
        return dataclasses.replace(
            event, correlation_id=self._id, source=source, final=final
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self._id})"


class NetworkAction(ABC, Generic[R]):
    """Mixin for jobs that need connectivity and can be queued while offline.

    When a dispatcher has a network gateway that reports offline, jobs mixing
    this in are not executed. The caller instead receives
    :meth:`create_optimistic_result` and the job is handed to the gateway to
    be replayed later.
    """

    @abstractmethod
    def create_optimistic_result(self) -> R:
        """Result to show while the real request is pending."""

    @property
    def deduplication_key(self) -> str | None:
        """Key identifying equivalent queued actions, if any."""
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serializable description of the action for an offline queue."""
        data: dict[str, Any] = {"type": type(self).__name__}
        if isinstance(self, Job):
            data["id"] = self.id
            data["metadata"] = self.metadata
        if self.deduplication_key is not None:
            data["deduplication_key"] = self.deduplication_key
        return data


class InvalidateCacheJob(Job[int]):
    """Remove entries from an executor's cache.

    Exactly which entries is given by ``key``, ``prefix`` or ``predicate``; at
    least one is required and all given selectors are applied. Run it with
    :class:`kairo.core.executor.CacheJobExecutor`; the result is the number of
    entries removed.
    """

    id_prefix = "invalidate"

    def __init__(
        self,
        key: str | None = None,
        prefix: str | None = None,
        predicate: Callable[[str], bool] | None = None,
        **kwargs: Any,
    ):
        if key is None and prefix is None and predicate is None:
            raise ValueError("InvalidateCacheJob needs a key, prefix or predicate")

        super().__init__(**kwargs)
        self.key = key
        self.prefix = prefix
        self.predicate = predicate

    def create_event(self, result: int) -> Event:
        return CacheInvalidatedEvent(
            self.id, key=self.key, prefix=self.prefix, removed=result
        )
