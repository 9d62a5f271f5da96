"""Per-kind event rate limiting for orchestrators.

Orchestrators that dispatch jobs in response to events can end up in a
feedback loop. The limiter counts events per concrete event class in fixed
windows and drops a kind once it exceeds its limit, until the window resets.
"""

import time
from collections.abc import Callable, Mapping

from kairo.schemas.events import Event
from kairo.utils.errors import RateLimitedError
from kairo.utils.telemetry import get_logger, record_rate_limited


class EventRateLimiter:
    """Fixed-window event counter keyed by event class.

    All counts reset together once ``window_seconds`` have passed since the
    window started. Within a window, the first ``limit`` events of a kind are
    allowed and the rest are dropped. A warning is logged the first time a
    kind is dropped in each window; every drop is counted in Prometheus.
    """

    def __init__(
        self,
        max_events_per_window: int = 50,
        window_seconds: float = 1.0,
        limits: Mapping[type[Event] | str, int] | None = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize rate limiter.

        Args:
            max_events_per_window: Limit for kinds without an explicit one
            window_seconds: Window length in seconds
            limits: Per-kind limits keyed by event class or class name
            name: Label used in logs and metrics
            clock: Monotonic time source, injectable for tests
        """
        if max_events_per_window <= 0:
            raise ValueError("max_events_per_window must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_events_per_window = max_events_per_window
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock
        self._limits: dict[str, int] = {}
        for kind, limit in (limits or {}).items():
            key = kind if isinstance(kind, str) else kind.__name__
            self._limits[key] = limit

        self._window_start = clock()
        self._counts: dict[type[Event], int] = {}
        self._warned: set[type[Event]] = set()
        self._logger = get_logger("kairo.rate_limiter", limiter=name)

    def limit_for(self, event_type: type[Event]) -> int:
        return self._limits.get(event_type.__name__, self.max_events_per_window)

    def count_for(self, event_type: type[Event]) -> int:
        """Events of ``event_type`` seen in the current window."""
        self._maybe_reset()
        return self._counts.get(event_type, 0)

    def _maybe_reset(self) -> None:
        now = self._clock()
        if now - self._window_start >= self.window_seconds:
            self._window_start = now
            self._counts.clear()
            self._warned.clear()

    def allow(self, event: Event) -> bool:
        """Count ``event`` and decide whether it may be handled.

        Returns:
            False if the event's kind exceeded its limit in this window
        """
        self._maybe_reset()

        event_type = type(event)
        count = self._counts.get(event_type, 0) + 1
        self._counts[event_type] = count

        limit = self.limit_for(event_type)
        if count <= limit:
            return True

        record_rate_limited(self.name, event_type.__name__)

        if event_type not in self._warned:
            self._warned.add(event_type)
            error = RateLimitedError(event_type.__name__, count, limit)
            self._logger.warning(
                str(error),
                event_type=event_type.__name__,
                count=count,
                limit=limit,
                window_seconds=self.window_seconds,
                recovery_action=error.recovery_action.value,
            )

        return False

    def reset(self) -> None:
        """Forget all counts and start a new window."""
        self._window_start = self._clock()
        self._counts.clear()
        self._warned.clear()
