"""PostgreSQL implementation of FollowRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import asyncpg

from sleepfeed.db.repositories.postgres.users import _affected


class PostgresFollowRepository:
    """PostgreSQL-backed follow edges."""

    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def exists(self, follower_id: int, followed_id: int) -> bool:
        val = await self.db.fetchval(
            "SELECT 1 FROM follows WHERE follower_id = $1 AND followed_id = $2",
            follower_id, followed_id,
        )
        return val is not None

    async def create(self, follower_id: int, followed_id: int) -> bool:
        now = datetime.now(timezone.utc).isoformat()
        try:
            status = await self.db.execute(
                """INSERT INTO follows (follower_id, followed_id, created_at)
                   VALUES ($1, $2, $3)
                   ON CONFLICT (follower_id, followed_id) DO NOTHING""",
                follower_id, followed_id, now,
            )
        except (asyncpg.CheckViolationError, asyncpg.ForeignKeyViolationError):
            return False
        return _affected(status) == 1

    async def destroy(self, follower_id: int, followed_id: int) -> bool:
        status = await self.db.execute(
            "DELETE FROM follows WHERE follower_id = $1 AND followed_id = $2",
            follower_id, followed_id,
        )
        return _affected(status) > 0

    async def list_following_ids(self, follower_id: int) -> list[int]:
        rows = await self.db.fetch(
            "SELECT followed_id FROM follows WHERE follower_id = $1 ORDER BY id", follower_id
        )
        return [int(r["followed_id"]) for r in rows]

    async def list_follower_ids(self, followed_id: int) -> list[int]:
        rows = await self.db.fetch(
            "SELECT follower_id FROM follows WHERE followed_id = $1 ORDER BY id", followed_id
        )
        return [int(r["follower_id"]) for r in rows]

    async def count_following(self, follower_id: int) -> int:
        val = await self.db.fetchval("SELECT COUNT(*) FROM follows WHERE follower_id = $1", follower_id)
        return val or 0

    async def count_followers(self, followed_id: int) -> int:
        val = await self.db.fetchval("SELECT COUNT(*) FROM follows WHERE followed_id = $1", followed_id)
        return val or 0
