"""Helpers for testing code built on kairo.

``EventCapture`` records everything emitted on a bus, and
``FakeCacheProvider`` is an in-memory cache that records every call and can
be told to fail.
"""

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

from kairo.core.bus import EventBus
from kairo.schemas.events import Event
from kairo.storage.cache import CacheProvider

E = TypeVar("E", bound=Event)


class EventCapture:
    """Subscribe to a bus and keep every event it delivers."""

    def __init__(self, bus: EventBus):
        self.bus = bus
        self.events: list[Event] = []
        self._waiters: list[tuple[Callable[[Event], bool], asyncio.Future[Event]]] = []
        self._subscription = bus.subscribe(self._record)

    def _record(self, event: Event) -> None:
        self.events.append(event)

        for waiter in list(self._waiters):
            matches, future = waiter
            if not future.done() and matches(event):
                future.set_result(event)
                self._waiters.remove(waiter)

    def of_type(self, event_type: type[E]) -> list[E]:
        return [event for event in self.events if isinstance(event, event_type)]

    def for_job(self, job_id: str) -> list[Event]:
        return [event for event in self.events if event.correlation_id == job_id]

    def types(self) -> list[type[Event]]:
        """Event classes in delivery order."""
        return [type(event) for event in self.events]

    async def wait_for(
        self,
        event_type: type[E],
        predicate: Callable[[E], bool] | None = None,
        timeout: float = 5.0,
    ) -> E:
        """Wait for an event of ``event_type``, including one already captured.

        Raises:
            TimeoutError: If no matching event arrives in time
        """

        def matches(event: Event) -> bool:
            return isinstance(event, event_type) and (
                predicate is None or predicate(event)
            )

        for event in self.events:
            if matches(event):
                return event  # type: ignore[return-value]

        future: asyncio.Future[Event] = asyncio.get_running_loop().create_future()
        waiter = (matches, future)
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(future, timeout)  # type: ignore[return-value]
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def clear(self) -> None:
        self.events.clear()

    def close(self) -> None:
        self._subscription.cancel()


class FakeCacheProvider(CacheProvider):
    """Dict-backed cache that records calls.

    Set ``fail_reads`` or ``fail_writes`` to make the matching calls raise
    ``ConnectionError``. TTLs are recorded but never enforced.
    """

    def __init__(self, initial: dict[str, Any] | None = None):
        self.data: dict[str, Any] = dict(initial or {})
        self.reads: list[str] = []
        self.writes: list[tuple[str, Any, float | None]] = []
        self.deletes: list[str] = []
        self.fail_reads = False
        self.fail_writes = False

    async def read(self, key: str) -> Any | None:
        self.reads.append(key)
        if self.fail_reads:
            raise ConnectionError("cache read failed")
        return self.data.get(key)

    async def write(self, key: str, value: Any, ttl: float | None = None) -> None:
        self.writes.append((key, value, ttl))
        if self.fail_writes:
            raise ConnectionError("cache write failed")
        self.data[key] = value

    async def delete(self, key: str) -> bool:
        self.deletes.append(key)
        return self.data.pop(key, None) is not None

    async def delete_matching(self, predicate: Callable[[str], bool]) -> int:
        keys = [key for key in self.data if predicate(key)]
        for key in keys:
            self.deletes.append(key)
            del self.data[key]
        return len(keys)

    async def clear(self) -> None:
        self.data.clear()


__all__ = ["EventCapture", "FakeCacheProvider"]
