"""PostgreSQL implementation of UserRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import asyncpg


class PostgresUserRepository:
    """PostgreSQL-backed user storage."""

    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def create(self, name: str) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        row = await self.db.fetchrow(
            "INSERT INTO users (name, created_at, updated_at) VALUES ($1, $2, $3) RETURNING *",
            name, now, now,
        )
        return dict(row)

    async def get_by_id(self, user_id: int) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
        return dict(row) if row else None

    async def get_many(self, user_ids: list[int]) -> list[dict]:
        if not user_ids:
            return []
        rows = await self.db.fetch(
            "SELECT * FROM users WHERE id = ANY($1::bigint[]) ORDER BY id", list(user_ids)
        )
        return [dict(r) for r in rows]

    async def list_paginated(self, offset: int, limit: int) -> list[dict]:
        rows = await self.db.fetch(
            "SELECT * FROM users ORDER BY id LIMIT $1 OFFSET $2", limit, offset
        )
        return [dict(r) for r in rows]

    async def count(self) -> int:
        val = await self.db.fetchval("SELECT COUNT(*) FROM users")
        return val or 0

    async def delete(self, user_id: int) -> bool:
        status = await self.db.execute("DELETE FROM users WHERE id = $1", user_id)
        return _affected(status) > 0


def _affected(status: str) -> int:
    """Row count from an asyncpg command tag such as ``DELETE 3``."""
    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except ValueError:
        return 0
