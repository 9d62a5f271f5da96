"""Cache storage backends."""

from .cache import CacheProvider, CacheStats, InMemoryCacheProvider
from .sqlite_cache import SQLiteCacheProvider

__all__ = [
    "CacheProvider",
    "CacheStats",
    "InMemoryCacheProvider",
    "SQLiteCacheProvider",
]
