"""Stateful orchestrators that issue jobs and react to events.

An orchestrator holds application state, dispatches jobs and listens to the
bus. It tracks the ids of jobs it dispatched (its active job set) so a single
event handler can tell its own results apart from events caused by others:

    class UserOrchestrator(Orchestrator[UserState]):
        def load(self, user_id: str) -> None:
            self.emit(replace(self.state, loading=True))
            self.dispatch(FetchUser(user_id))

        def on_event(self, event: Event) -> None:
            match event:
                case UserFetched() if self.owns(event.correlation_id):
                    self.emit(replace(self.state, user=event.user, loading=False))
                case JobFailureEvent() if self.owns(event.correlation_id):
                    self.emit(replace(self.state, error=describe_error(event.error)))
                case UserUpdated():
                    # Someone else changed a user; refresh passively.
                    ...
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any, Generic, TypeVar

from kairo.core.bus import EventBus, get_default_bus
from kairo.core.dispatcher import Dispatcher
from kairo.core.job import Job
from kairo.core.job_handle import JobHandle
from kairo.core.rate_limiter import EventRateLimiter
from kairo.schemas.events import Event
from kairo.utils.telemetry import get_logger, update_active_jobs

S = TypeVar("S")

StateListener = Callable[[Any], None]

_CLOSED = object()


class OrchestratorConfig:
    """Configuration for the Orchestrator."""

    def __init__(
        self,
        max_events_per_window: int = 50,
        rate_limit_window_seconds: float = 1.0,
        event_limits: Mapping[type[Event] | str, int] | None = None,
        rate_limiting_enabled: bool = True,
    ):
        """Initialize orchestrator configuration.

        Args:
            max_events_per_window: Events of one kind handled per window
            rate_limit_window_seconds: Rate limit window length
            event_limits: Per-kind overrides keyed by event class or name
            rate_limiting_enabled: Disable to handle every event
        """
        self.max_events_per_window = max_events_per_window
        self.rate_limit_window_seconds = rate_limit_window_seconds
        self.event_limits = dict(event_limits or {})
        self.rate_limiting_enabled = rate_limiting_enabled

    def build_rate_limiter(self, name: str) -> EventRateLimiter:
        return EventRateLimiter(
            max_events_per_window=self.max_events_per_window,
            window_seconds=self.rate_limit_window_seconds,
            limits=self.event_limits,
            name=name,
        )


class Orchestrator(Generic[S]):
    """Base class for stateful event-driven controllers.

    Subclasses override :meth:`on_event`. It is called for every event on the
    bus that passes the rate limiter, owned or not. Use :meth:`owns` to tell
    whether the event belongs to a job this orchestrator dispatched. After a
    terminal event for an owned job is handled, the job stops being tracked.
    """

    def __init__(
        self,
        initial_state: S,
        dispatcher: Dispatcher,
        bus: EventBus | None = None,
        config: OrchestratorConfig | None = None,
        rate_limiter: EventRateLimiter | None = None,
        name: str | None = None,
    ):
        """Initialize orchestrator and subscribe to the bus.

        Args:
            initial_state: Starting state
            dispatcher: Dispatcher used to route jobs
            bus: Bus to listen on (defaults to the process-wide default bus)
            config: Orchestrator configuration
            rate_limiter: Limiter instance, possibly shared between
                orchestrators (built from ``config`` when omitted)
            name: Name used in logs and metrics
        """
        self.name = name or type(self).__name__
        self.config = config or OrchestratorConfig()
        self.dispatcher = dispatcher
        self.bus = bus if bus is not None else get_default_bus()

        if rate_limiter is None and self.config.rate_limiting_enabled:
            rate_limiter = self.config.build_rate_limiter(self.name)
        self.rate_limiter = rate_limiter

        self._state = initial_state
        self._active_jobs: set[str] = set()
        self._state_listeners: list[StateListener] = []
        self._state_queues: list[asyncio.Queue[Any]] = []
        self._closed = False
        self._logger = get_logger("kairo.orchestrator", orchestrator=self.name)

        self._subscription = self.bus.subscribe(self._handle_bus_event)

    # State

    @property
    def state(self) -> S:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._closed

    def emit(self, new_state: S) -> None:
        """Replace the state and notify state listeners. Ignored after close."""
        if self._closed:
            return

        self._state = new_state

        for listener in list(self._state_listeners):
            try:
                listener(new_state)
            except Exception:
                self._logger.exception("State listener failed")

        for queue in self._state_queues:
            queue.put_nowait(new_state)

    def subscribe(self, listener: Callable[[S], None]) -> Callable[[], None]:
        """Listen for state changes.

        Returns:
            Callable that removes the listener
        """
        self._state_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return unsubscribe

    async def states(self) -> AsyncIterator[S]:
        """Iterate over state changes until the orchestrator is closed."""
        if self._closed:
            return

        queue: asyncio.Queue[Any] = asyncio.Queue()
        self._state_queues.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            if queue in self._state_queues:
                self._state_queues.remove(queue)

    # Jobs

    def dispatch(self, job: Job[Any]) -> JobHandle[Any]:
        """Dispatch a job and track it as owned by this orchestrator.

        Raises:
            ExecutorNotFoundError: If no executor handles the job; the job
                is not tracked
        """
        self._active_jobs.add(job.id)
        try:
            handle = self.dispatcher.dispatch(job)
        except Exception:
            self._release(job.id)
            raise

        self._report_active()
        return handle

    def owns(self, correlation_id: str) -> bool:
        """Whether ``correlation_id`` belongs to a job this orchestrator runs."""
        return correlation_id in self._active_jobs

    def is_job_running(self, job_id: str) -> bool:
        return job_id in self._active_jobs

    @property
    def has_active_jobs(self) -> bool:
        return bool(self._active_jobs)

    @property
    def active_job_ids(self) -> frozenset[str]:
        return frozenset(self._active_jobs)

    def cancel_job(self, job_id: str) -> bool:
        """Stop tracking a job.

        The job keeps running; its remaining events are treated as passive.
        Use the job's ``CancellationToken`` to actually stop it.

        Returns:
            True if the job was tracked
        """
        if job_id not in self._active_jobs:
            return False
        self._release(job_id)
        return True

    def _release(self, job_id: str) -> None:
        self._active_jobs.discard(job_id)
        self._report_active()

    def _report_active(self) -> None:
        update_active_jobs(self.name, len(self._active_jobs))

    # Events

    def on_event(self, event: Event) -> None:
        """Handle an event from the bus. Override in subclasses."""

    def _handle_bus_event(self, event: Event) -> None:
        if self._closed:
            return

        job_id = event.correlation_id
        owned = job_id in self._active_jobs
        release = owned and event.is_terminal

        if self.rate_limiter is not None and not self.rate_limiter.allow(event):
            if release:
                self._release(job_id)
            return

        try:
            self.on_event(event)
        except Exception:
            self._logger.exception(
                "Event handler failed",
                event_type=type(event).__name__,
                correlation_id=job_id,
            )

        if release:
            self._release(job_id)

    # Lifecycle

    def close(self) -> None:
        """Stop listening, forget tracked jobs and end state iteration."""
        if self._closed:
            return

        self._closed = True
        self._subscription.cancel()
        self._active_jobs.clear()
        self._report_active()
        self._state_listeners.clear()

        for queue in self._state_queues:
            queue.put_nowait(_CLOSED)

        self._logger.debug("Orchestrator closed")
