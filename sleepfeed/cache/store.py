"""Best-effort cache facade.

Backend failures never escape by default: reads degrade to a miss, writes
and deletes report ``False``. Callers treat a miss as "consult the store".
Writers that must not mistake an outage for an empty entry pass
``strict=True`` and get a ``TransientError`` instead.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from sleepfeed import observability
from sleepfeed.cache.keys import CacheKey
from sleepfeed.errors import TransientError

logger = logging.getLogger("sleepfeed.cache")


class CacheStore:
    def __init__(self, backend):
        self.backend = backend

    def _degraded(self, operation: str, key: str, exc: Exception) -> None:
        logger.warning("Cache %s failed for %s: %s", operation, key, exc)
        observability.record_cache_error(operation)

    async def get(self, key: CacheKey, strict: bool = False) -> Any | None:
        rendered = key.render()
        try:
            return await self.backend.get(rendered)
        except Exception as exc:
            self._degraded("get", rendered, exc)
            if strict:
                raise TransientError(f"cache unavailable reading {rendered}") from exc
            return None

    async def set(self, key: CacheKey, value: Any, ttl: int | None, strict: bool = False) -> bool:
        rendered = key.render()
        try:
            await self.backend.set(rendered, value, ttl)
            return True
        except Exception as exc:
            self._degraded("set", rendered, exc)
            if strict:
                raise TransientError(f"cache unavailable writing {rendered}") from exc
            return False

    async def update(
        self,
        key: CacheKey,
        fn: Callable[[Any | None], Any],
        ttl: int | None,
    ) -> Any:
        """Atomic read-modify-write. Always strict: failures raise ``TransientError``."""
        rendered = key.render()
        try:
            return await self.backend.update(rendered, fn, ttl)
        except Exception as exc:
            self._degraded("update", rendered, exc)
            raise TransientError(f"cache unavailable updating {rendered}") from exc

    async def delete(self, key: CacheKey) -> bool:
        rendered = key.render()
        try:
            await self.backend.delete(rendered)
            return True
        except Exception as exc:
            self._degraded("delete", rendered, exc)
            return False

    async def delete_prefix(self, prefix: str) -> int:
        try:
            return await self.backend.delete_prefix(prefix)
        except Exception as exc:
            self._degraded("delete_prefix", prefix, exc)
            return 0

    async def purge_expired(self) -> int:
        try:
            return await self.backend.purge_expired()
        except Exception as exc:
            self._degraded("purge", "*", exc)
            return 0

    async def fetch(
        self,
        key: CacheKey,
        ttl: int | None,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Read-through: return the cached value or load, store and return it."""
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        await self.set(key, value, ttl)
        return value
