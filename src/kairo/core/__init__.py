# Job engine: bus, jobs, executors, dispatch and orchestration

from .bus import (
    EventBus,
    Subscription,
    get_default_bus,
    init_default_bus,
    shutdown_default_bus,
)
from .dispatcher import Dispatcher, NetworkGateway
from .executor import CacheJobExecutor, Executor
from .job import InvalidateCacheJob, Job, NetworkAction, generate_job_id
from .job_handle import HandleState, JobHandle, JobHandleResult
from .observer import JobObserver, LoggingObserver, notify_observer
from .orchestrator import Orchestrator, OrchestratorConfig
from .rate_limiter import EventRateLimiter

__all__ = [
    "CacheJobExecutor",
    "Dispatcher",
    "EventBus",
    "EventRateLimiter",
    "Executor",
    "HandleState",
    "InvalidateCacheJob",
    "Job",
    "JobHandle",
    "JobHandleResult",
    "JobObserver",
    "LoggingObserver",
    "NetworkAction",
    "NetworkGateway",
    "Orchestrator",
    "OrchestratorConfig",
    "Subscription",
    "generate_job_id",
    "get_default_bus",
    "init_default_bus",
    "notify_observer",
    "shutdown_default_bus",
]
