"""Value types and event definitions for the kairo job engine."""

from .events import (
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
from .types import CachePolicy, CancellationToken, DataSource, JobProgress

__all__ = [
    "CacheInvalidatedEvent",
    "CachePolicy",
    "CancellationToken",
    "DataSource",
    "Event",
    "JobCacheHitEvent",
    "JobCancelledEvent",
    "JobFailureEvent",
    "JobPlaceholderEvent",
    "JobProgress",
    "JobProgressEvent",
    "JobRetryingEvent",
    "JobStartedEvent",
    "JobTimeoutEvent",
]
