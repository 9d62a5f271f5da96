"""In-memory publish/subscribe event bus.

Delivery is synchronous and at-most-once: ``emit`` calls every current
listener before returning, and nothing is stored for listeners that subscribe
later. Events emitted from inside a listener are queued and delivered after
the event being delivered, so every listener observes events in emission
order.
"""

import itertools
from collections import deque
from collections.abc import Callable

from kairo.core.observer import JobObserver, notify_observer
from kairo.schemas.events import Event
from kairo.utils.errors import BusClosedError
from kairo.utils.telemetry import (
    get_logger,
    record_event_emitted,
    record_listener_error,
)

Listener = Callable[[Event], None]

_scoped_ids = itertools.count(1)


class Subscription:
    """Registration of one listener on a bus."""

    def __init__(self, bus: "EventBus", listener: Listener):
        self._bus = bus
        self.listener = listener
        self.active = True

    def cancel(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        self._bus.unsubscribe(self)


class EventBus:
    """Broadcast events to every subscribed listener.

    A listener that raises does not affect delivery to the others; the
    exception is logged and counted. Buses are independent: a scoped bus
    only reaches components that were explicitly given it.
    """

    def __init__(self, name: str | None = None, observer: JobObserver | None = None):
        """Initialize event bus.

        Args:
            name: Label used in logs and metrics (defaults to ``scoped-<n>``)
            observer: Observer whose ``on_event`` sees every emitted event
        """
        self.name = name or f"scoped-{next(_scoped_ids)}"
        self.observer = observer
        self._subscriptions: list[Subscription] = []
        self._pending: deque[Event] = deque()
        self._delivering = False
        self._closed = False
        self._logger = get_logger("kairo.bus", bus=self.name)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, listener: Listener) -> Subscription:
        """Register a listener for all future events.

        Raises:
            BusClosedError: If the bus was closed
        """
        if self._closed:
            raise BusClosedError(f"Cannot subscribe to closed bus {self.name}")

        subscription = Subscription(self, listener)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a listener.

        Takes effect immediately, including for an event currently being
        delivered that has not reached the listener yet.
        """
        subscription.active = False
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def emit(self, event: Event) -> None:
        """Deliver an event to every current listener."""
        if self._closed:
            self._logger.debug(
                "Dropping event emitted on closed bus",
                event_type=type(event).__name__,
                correlation_id=event.correlation_id,
            )
            return

        self._pending.append(event)
        if self._delivering:
            return

        self._delivering = True
        try:
            while self._pending and not self._closed:
                self._deliver(self._pending.popleft())
        finally:
            self._pending.clear()
            self._delivering = False

    def _deliver(self, event: Event) -> None:
        event_type = type(event).__name__
        record_event_emitted(self.name, event_type)
        notify_observer(self.observer, lambda o: o.on_event(event))

        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                subscription.listener(event)
            except Exception:
                record_listener_error(self.name)
                self._logger.exception(
                    "Listener raised during event delivery",
                    event_type=event_type,
                    correlation_id=event.correlation_id,
                )

    def close(self) -> None:
        """Drop every subscription. Later emits are ignored."""
        if self._closed:
            return

        self._closed = True
        for subscription in self._subscriptions:
            subscription.active = False
        self._subscriptions.clear()
        self._logger.debug("Event bus closed")

    def __repr__(self) -> str:
        return f"EventBus(name={self.name}, subscribers={len(self._subscriptions)})"


_default_bus: EventBus | None = None


def init_default_bus(observer: JobObserver | None = None) -> EventBus:
    """Create the process-wide default bus, or return it if already live.

    An ``observer`` passed while the bus is live replaces its observer.
    """
    global _default_bus

    if _default_bus is None or _default_bus.is_closed:
        _default_bus = EventBus(name="default", observer=observer)
    elif observer is not None:
        _default_bus.observer = observer
        _default_bus._logger.debug("Default bus observer replaced")
    return _default_bus


def get_default_bus() -> EventBus:
    """Return the process-wide default bus.

    Raises:
        BusClosedError: If :func:`init_default_bus` was not called, or the
            bus was shut down since
    """
    if _default_bus is None or _default_bus.is_closed:
        raise BusClosedError(
            "Default event bus is not initialized; call init_default_bus() first"
        )
    return _default_bus


def shutdown_default_bus() -> None:
    """Close and forget the default bus. A later init creates a new one."""
    global _default_bus

    if _default_bus is not None:
        _default_bus.close()
        _default_bus = None
