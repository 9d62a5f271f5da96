"""Cache providers used by executors for cache-aside job policies.

The engine adds no locking around cache calls; providers must tolerate
concurrent access themselves. Concurrent writes to the same key are
last-writer-wins.
"""

import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from kairo.utils.telemetry import get_logger


class CacheProvider(ABC):
    """Key/value store consulted by executors before and after running a job."""

    @abstractmethod
    async def read(self, key: str) -> Any | None:
        """Return the value stored under ``key``, or None if absent or expired."""

    @abstractmethod
    async def write(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds (None = no expiry)."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if an entry was removed."""

    @abstractmethod
    async def delete_matching(self, predicate: Callable[[str], bool]) -> int:
        """Remove every key accepted by ``predicate``. Returns the count removed."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry."""


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of an in-memory cache's occupancy."""

    entry_count: int
    max_entries: int
    expired_count: int
    usage_ratio: float


class InMemoryCacheProvider(CacheProvider):
    """Process-local cache with TTL expiry and LRU eviction.

    Expired entries are removed lazily on read, or in bulk by
    :meth:`evict_expired`. When the cache is full the least recently used
    entry is evicted to make room.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize in-memory cache.

        Args:
            max_entries: Capacity before LRU eviction starts
            default_ttl: TTL in seconds applied when ``write`` gets none
            clock: Monotonic time source, injectable for tests
        """
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")

        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        # key -> (value, expires_at or None)
        self._entries: OrderedDict[str, tuple[Any, float | None]] = OrderedDict()
        self._logger = get_logger("kairo.storage.memory")

    def _is_expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    async def read(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if self._is_expired(expires_at):
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return value

    async def write(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = ttl if ttl is not None else self.default_ttl
        expires_at = self._clock() + ttl if ttl is not None else None

        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = (value, expires_at)

        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._logger.debug("Evicted least recently used entry", key=evicted)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def delete_matching(self, predicate: Callable[[str], bool]) -> int:
        keys = [key for key in self._entries if predicate(key)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def clear(self) -> None:
        self._entries.clear()

    async def evict_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed
        """
        expired = [
            key
            for key, (_, expires_at) in self._entries.items()
            if self._is_expired(expires_at)
        ]
        for key in expired:
            del self._entries[key]

        if expired:
            self._logger.debug("Evicted expired entries", count=len(expired))
        return len(expired)

    def get_stats(self) -> CacheStats:
        expired_count = sum(
            1
            for _, expires_at in self._entries.values()
            if self._is_expired(expires_at)
        )
        return CacheStats(
            entry_count=len(self._entries),
            max_entries=self.max_entries,
            expired_count=expired_count,
            usage_ratio=len(self._entries) / self.max_entries,
        )

    def __len__(self) -> int:
        return len(self._entries)
