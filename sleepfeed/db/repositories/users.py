"""SQLite implementation of UserRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite


class SqliteUserRepository:
    """SQLite-backed user storage."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, name: str) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        async with self.db.execute(
            "INSERT INTO users (name, created_at, updated_at) VALUES (?, ?, ?)",
            (name, now, now),
        ) as cur:
            user_id = cur.lastrowid
        await self.db.commit()
        return {"id": user_id, "name": name, "created_at": now, "updated_at": now}

    async def get_by_id(self, user_id: int) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM users WHERE id = ?", (user_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def get_many(self, user_ids: list[int]) -> list[dict]:
        if not user_ids:
            return []
        placeholders = ", ".join("?" for _ in user_ids)
        async with self.db.execute(
            f"SELECT * FROM users WHERE id IN ({placeholders}) ORDER BY id",
            tuple(user_ids),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_paginated(self, offset: int, limit: int) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM users ORDER BY id LIMIT ? OFFSET ?", (limit, offset)
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def count(self) -> int:
        async with self.db.execute("SELECT COUNT(*) FROM users") as cur:
            row = await cur.fetchone()
        return row[0] if row else 0

    async def delete(self, user_id: int) -> bool:
        async with self.db.execute("DELETE FROM users WHERE id = ?", (user_id,)) as cur:
            deleted = cur.rowcount
        await self.db.commit()
        return deleted > 0
