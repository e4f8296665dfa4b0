"""SQLite implementation of FollowRepository (directed follow edges)."""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

import aiosqlite


class SqliteFollowRepository:
    """Follow edges with uniqueness per ordered pair and no self edges."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def exists(self, follower_id: int, followed_id: int) -> bool:
        async with self.db.execute(
            "SELECT 1 FROM follows WHERE follower_id = ? AND followed_id = ?",
            (follower_id, followed_id),
        ) as cur:
            return await cur.fetchone() is not None

    async def create(self, follower_id: int, followed_id: int) -> bool:
        """Insert the edge. False when it already exists or violates a constraint."""
        now = datetime.now(timezone.utc).isoformat()
        try:
            await self.db.execute(
                "INSERT INTO follows (follower_id, followed_id, created_at) VALUES (?, ?, ?)",
                (follower_id, followed_id, now),
            )
        except sqlite3.IntegrityError:
            # the failed insert undoes itself; no rollback on the shared connection
            return False
        await self.db.commit()
        return True

    async def destroy(self, follower_id: int, followed_id: int) -> bool:
        async with self.db.execute(
            "DELETE FROM follows WHERE follower_id = ? AND followed_id = ?",
            (follower_id, followed_id),
        ) as cur:
            deleted = cur.rowcount
        await self.db.commit()
        return deleted > 0

    async def list_following_ids(self, follower_id: int) -> list[int]:
        async with self.db.execute(
            "SELECT followed_id FROM follows WHERE follower_id = ? ORDER BY id",
            (follower_id,),
        ) as cur:
            return [int(r[0]) for r in await cur.fetchall()]

    async def list_follower_ids(self, followed_id: int) -> list[int]:
        async with self.db.execute(
            "SELECT follower_id FROM follows WHERE followed_id = ? ORDER BY id",
            (followed_id,),
        ) as cur:
            return [int(r[0]) for r in await cur.fetchall()]

    async def count_following(self, follower_id: int) -> int:
        async with self.db.execute(
            "SELECT COUNT(*) FROM follows WHERE follower_id = ?", (follower_id,)
        ) as cur:
            row = await cur.fetchone()
        return row[0] if row else 0

    async def count_followers(self, followed_id: int) -> int:
        async with self.db.execute(
            "SELECT COUNT(*) FROM follows WHERE followed_id = ?", (followed_id,)
        ) as cur:
            row = await cur.fetchone()
        return row[0] if row else 0
