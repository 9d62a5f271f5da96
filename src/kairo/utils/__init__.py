# Shared utilities and helpers

from .errors import (
    BusClosedError,
    ExecutorNotFoundError,
    JobAlreadyDispatchedError,
    JobCancelledError,
    JobFailedError,
    JobTimeoutError,
    OrchestrationError,
    PermanentFailure,
    RateLimitedError,
    RecoveryAction,
    TransientFailure,
    describe_error,
)
from .retry import RetryPolicy, execute_with_retry

__all__ = [
    "BusClosedError",
    "ExecutorNotFoundError",
    "JobAlreadyDispatchedError",
    "JobCancelledError",
    "JobFailedError",
    "JobTimeoutError",
    "OrchestrationError",
    "PermanentFailure",
    "RateLimitedError",
    "RecoveryAction",
    "RetryPolicy",
    "TransientFailure",
    "describe_error",
    "execute_with_retry",
]
