"""Core value types shared by jobs, handles and executors."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from kairo.utils.errors import JobCancelledError
from kairo.utils.telemetry import get_logger


class DataSource(Enum):
    """Where a job result came from."""

    FRESH = "fresh"
    CACHED = "cached"
    OPTIMISTIC = "optimistic"
    FAILED = "failed"


@dataclass(frozen=True)
class CachePolicy:
    """Cache-aside configuration for a job.

    Attributes:
        key: Cache key identifying the result
        ttl: Time-to-live in seconds (None keeps the entry until invalidated)
        revalidate: On a hit, serve the cached value and still run the job
            in the background (stale-while-revalidate). When False the hit
            ends the job (cache-first).
        force_refresh: Skip the cache read entirely (network-first); the
            fresh result is still written back.
    """

    key: str
    ttl: float | None = None
    revalidate: bool = True
    force_refresh: bool = False

    def __post_init__(self) -> None:
        if not self.key.strip():
            raise ValueError("Cache key cannot be empty")
        if self.ttl is not None and self.ttl <= 0:
            raise ValueError("ttl must be positive")


@dataclass(frozen=True)
class JobProgress:
    """Progress update from a running job."""

    value: float
    message: str | None = None
    current_step: int | None = None
    total_steps: int | None = None

    @property
    def percentage(self) -> int:
        """Progress as a rounded percentage (0-100)."""
        return round(self.value * 100)


class CancellationToken:
    """Token for cooperative cancellation of running jobs.

    Cancellation is advisory. The engine checks the token before every
    attempt and during backoff waits, but a running ``process()`` keeps going
    until it calls :meth:`throw_if_cancelled` or checks :attr:`is_cancelled`
    itself. Long-running executors must poll the token at sensible
    checkpoints (before expensive calls, inside loops).

    A token is created and owned by the caller and may be shared by several
    jobs.
    """

    def __init__(self) -> None:
        self._cancelled = asyncio.Event()
        self._listeners: list[Callable[[], None]] = []
        self.reason: str | None = None
        self._logger = get_logger("kairo.cancellation")

    @property
    def is_cancelled(self) -> bool:
        """Check if the token has been cancelled."""
        return self._cancelled.is_set()

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Calling it again has no effect.

        Args:
            reason: Optional human-readable reason
        """
        if self._cancelled.is_set():
            return

        self.reason = reason
        self._cancelled.set()

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener()
            except Exception:
                self._logger.exception("Cancellation listener failed")

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback run once when cancellation is requested.

        If the token is already cancelled the callback runs immediately.

        Returns:
            Callable that unregisters the callback
        """
        if self.is_cancelled:
            callback()
            return lambda: None

        self._listeners.append(callback)

        def unregister() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unregister

    def throw_if_cancelled(self) -> None:
        """Raise :class:`JobCancelledError` if cancellation was requested."""
        if self.is_cancelled:
            raise JobCancelledError(reason=self.reason)

    async def wait_cancelled(self) -> None:
        """Wait until the token is cancelled."""
        await self._cancelled.wait()

    def __repr__(self) -> str:
        status = "cancelled" if self.is_cancelled else "active"
        reason_info = f", reason={self.reason}" if self.reason else ""
        return f"CancellationToken(status={status}{reason_info})"
