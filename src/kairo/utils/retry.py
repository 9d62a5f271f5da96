"""Retry policy with exponential backoff.

The policy is a pure decision function: it never sleeps or calls anything
itself. ``Executor`` and :func:`execute_with_retry` drive the actual loop.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from kairo.utils.errors import JobCancelledError, PermanentFailure

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for failed jobs.

    Attributes:
        max_retries: Maximum number of retries after the first attempt
        base_delay: Delay in seconds before the first retry
        max_delay: Upper bound for any single delay in seconds
        backoff_multiplier: Growth factor per attempt (1.0 gives a constant delay)
        should_retry: Optional predicate ``(error, attempt) -> bool`` used to
            exclude error kinds that must not be retried
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    should_retry: Callable[[BaseException, int], bool] | None = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1.0")

    def get_delay(self, attempt: int) -> float:
        """Calculate delay before retrying after the given 0-indexed attempt.

        ``min(max_delay, base_delay * backoff_multiplier ** attempt)``, so the
        defaults give 1s, 2s, 4s, ... capped at 30s.
        """
        return min(self.max_delay, self.base_delay * self.backoff_multiplier**attempt)

    def can_retry(self, error: BaseException, attempt: int) -> bool:
        """Check whether another attempt is allowed after ``error``.

        Args:
            error: Exception raised by the failed attempt
            attempt: 0-indexed number of the attempt that failed

        Returns:
            True if the caller should wait ``get_delay(attempt)`` and retry
        """
        if attempt >= self.max_retries:
            return False
        if isinstance(error, (PermanentFailure, JobCancelledError)):
            return False
        if self.should_retry is not None:
            return bool(self.should_retry(error, attempt))
        return True


async def execute_with_retry(
    action: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    on_retry: Callable[[BaseException, int], None] | None = None,
) -> T:
    """Run ``action`` until it succeeds or the policy gives up.

    Args:
        action: Zero-argument coroutine factory
        policy: Retry policy to apply
        on_retry: Called with ``(error, attempt)`` before each backoff wait

    Returns:
        The first successful result

    Raises:
        The last error once no retry is allowed
    """
    attempt = 0

    while True:
        try:
            return await action()
        except Exception as e:
            if not policy.can_retry(e, attempt):
                raise

            if on_retry is not None:
                on_retry(e, attempt)

            await asyncio.sleep(policy.get_delay(attempt))
            attempt += 1
