"""Derived-value cache: keys, backends and the best-effort store."""

from sleepfeed.cache.backends import DbCacheBackend, MemoryCacheBackend, build_backend
from sleepfeed.cache.keys import CacheKey
from sleepfeed.cache.store import CacheStore

__all__ = [
    "CacheKey",
    "CacheStore",
    "DbCacheBackend",
    "MemoryCacheBackend",
    "build_backend",
]
