"""Cache backends: database table or process-local dict."""
from __future__ import annotations

import copy
import logging
import time
from typing import Any, Callable

from sleepfeed import config
from sleepfeed.db.factory import get_cache_entry_repository
from sleepfeed.errors import TransientError

logger = logging.getLogger("sleepfeed.cache")


class DbCacheBackend:
    """Stores entries in the ``cache_entries`` table of the main database."""

    def __init__(self, repo, clock: Callable[[], float] = time.time):
        self.repo = repo
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        return await self.repo.get(key, self._clock())

    async def set(self, key: str, value: Any, ttl: int | None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        await self.repo.set(key, value, expires_at)

    async def update(self, key: str, fn: Callable[[Any | None], Any], ttl: int | None) -> Any:
        """Compare-and-set read-modify-write, safe across workers and processes.

        ``fn`` gets the current value (None when absent or expired) and may be
        called again with a fresher value if another writer gets in between.
        """
        attempts = max(1, config.CACHE_CAS_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            current, version = await self.repo.get_versioned(key, self._clock())
            value = fn(current)
            expires_at = self._clock() + ttl if ttl else None
            if await self.repo.compare_and_set(key, value, expires_at, version):
                return value
            logger.debug("Cache update of %s lost a race (attempt %s/%s)", key, attempt, attempts)
        raise TransientError(f"cache update of {key} kept conflicting")

    async def delete(self, key: str) -> None:
        await self.repo.delete(key)

    async def delete_prefix(self, prefix: str) -> int:
        return await self.repo.delete_prefix(prefix)

    async def purge_expired(self) -> int:
        return await self.repo.purge_expired(self._clock())


class MemoryCacheBackend:
    """Process-local backend. Values are deep-copied in and out."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._entries: dict[str, tuple[Any, float | None]] = {}
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl: int | None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._entries[key] = (copy.deepcopy(value), expires_at)

    async def update(self, key: str, fn: Callable[[Any | None], Any], ttl: int | None) -> Any:
        # get and set never suspend, so nothing interleaves here
        value = fn(await self.get(key))
        await self.set(key, value, ttl)
        return value

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    async def purge_expired(self) -> int:
        now = self._clock()
        doomed = [
            key for key, (_, expires_at) in self._entries.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in doomed:
            del self._entries[key]
        return len(doomed)


def build_backend(kind: str, db: Any):
    if kind == "memory":
        return MemoryCacheBackend()
    return DbCacheBackend(get_cache_entry_repository(db))
