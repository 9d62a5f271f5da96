"""kairo - event-driven job orchestration for asyncio applications.

kairo separates *what* work must happen (jobs) from *how* it is performed
(executors). Results are broadcast as events on a bus, and stateful
orchestrators route them back to the code that asked for them.
"""

__version__ = "0.1.0"

from .core import (
    CacheJobExecutor,
    Dispatcher,
    EventBus,
    EventRateLimiter,
    Executor,
    HandleState,
    InvalidateCacheJob,
    Job,
    JobHandle,
    JobHandleResult,
    JobObserver,
    LoggingObserver,
    NetworkAction,
    NetworkGateway,
    Orchestrator,
    OrchestratorConfig,
    Subscription,
    generate_job_id,
    get_default_bus,
    init_default_bus,
    shutdown_default_bus,
)
from .schemas import (
    CacheInvalidatedEvent,
    CachePolicy,
    CancellationToken,
    DataSource,
    Event,
    JobCacheHitEvent,
    JobCancelledEvent,
    JobFailureEvent,
    JobPlaceholderEvent,
    JobProgress,
    JobProgressEvent,
    JobRetryingEvent,
    JobStartedEvent,
    JobTimeoutEvent,
)
from .storage import CacheProvider, InMemoryCacheProvider, SQLiteCacheProvider
from .utils import (
    ExecutorNotFoundError,
    JobCancelledError,
    JobFailedError,
    JobTimeoutError,
    OrchestrationError,
    PermanentFailure,
    RetryPolicy,
    TransientFailure,
    describe_error,
)

__all__ = [
    "CacheInvalidatedEvent",
    "CacheJobExecutor",
    "CachePolicy",
    "CacheProvider",
    "CancellationToken",
    "DataSource",
    "Dispatcher",
    "Event",
    "EventBus",
    "EventRateLimiter",
    "Executor",
    "ExecutorNotFoundError",
    "HandleState",
    "InMemoryCacheProvider",
    "InvalidateCacheJob",
    "Job",
    "JobCacheHitEvent",
    "JobCancelledError",
    "JobCancelledEvent",
    "JobFailedError",
    "JobFailureEvent",
    "JobHandle",
    "JobHandleResult",
    "JobObserver",
    "JobPlaceholderEvent",
    "JobProgress",
    "JobProgressEvent",
    "JobRetryingEvent",
    "JobStartedEvent",
    "JobTimeoutError",
    "JobTimeoutEvent",
    "LoggingObserver",
    "NetworkAction",
    "NetworkGateway",
    "OrchestrationError",
    "Orchestrator",
    "OrchestratorConfig",
    "PermanentFailure",
    "RetryPolicy",
    "SQLiteCacheProvider",
    "Subscription",
    "TransientFailure",
    "__version__",
    "describe_error",
    "generate_job_id",
    "get_default_bus",
    "init_default_bus",
    "shutdown_default_bus",
]
