"""Advisory pointer to each user's open sleep session."""
from __future__ import annotations

import logging
from typing import Any

from sleepfeed import config
from sleepfeed.cache.keys import open_session_key
from sleepfeed.cache.store import CacheStore

logger = logging.getLogger("sleepfeed.cache")


class SessionCache:
    """Derived index over the session store.

    A hit is only returned after the store confirms the session still exists,
    belongs to the user and is open. A miss means "ask the store".
    """

    def __init__(self, cache: CacheStore, sessions, ttl: int | None = None):
        self.cache = cache
        self.sessions = sessions
        self.ttl = ttl if ttl is not None else config.OPEN_SESSION_TTL_SECONDS

    async def remember_open(self, session: dict[str, Any]) -> bool:
        pointer = {
            "id": int(session["id"]),
            "clock_in_time": session["clock_in_time"],
            "created_at": session.get("created_at") or "",
        }
        return await self.cache.set(open_session_key(int(session["user_id"])), pointer, self.ttl)

    async def resolve_open(self, user_id: int) -> dict | None:
        key = open_session_key(user_id)
        pointer = await self.cache.get(key)
        if not isinstance(pointer, dict) or pointer.get("id") is None:
            return None

        session = await self.sessions.get_by_id(int(pointer["id"]))
        if (
            session is None
            or int(session["user_id"]) != user_id
            or session.get("clock_out_time")
        ):
            logger.warning("Discarding stale open-session pointer for user %s: %s", user_id, pointer)
            await self.cache.delete(key)
            return None
        return session

    async def forget(self, user_id: int, session_id: int) -> None:
        """Drop the pointer if it names ``session_id`` (or cannot be read)."""
        key = open_session_key(user_id)
        pointer = await self.cache.get(key)
        if isinstance(pointer, dict) and pointer.get("id") not in (None, session_id):
            return
        await self.cache.delete(key)
