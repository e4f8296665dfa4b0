"""PostgreSQL implementation of SleepSessionRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import asyncpg

from sleepfeed.db.repositories.postgres.users import _affected
from sleepfeed.errors import ConflictError, NotFoundError, ValidationError


class PostgresSleepSessionRepository:
    """PostgreSQL-backed sleep session log."""

    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def create(self, user_id: int, clock_in_time: str) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        try:
            row = await self.db.fetchrow(
                """INSERT INTO sleep_sessions (
                    user_id, clock_in_time, clock_out_time, duration, created_at, updated_at
                ) VALUES ($1, $2, NULL, 0, $3, $4)
                RETURNING *""",
                user_id, clock_in_time, now, now,
            )
        except asyncpg.ForeignKeyViolationError as exc:
            raise NotFoundError("user not found") from exc
        except asyncpg.UniqueViolationError as exc:
            raise ConflictError("already clocked in") from exc
        except asyncpg.NotNullViolationError as exc:
            raise ValidationError("clock_in_time is required") from exc
        return dict(row)

    async def close_if_open(self, session_id: int, clock_out_time: str, duration: int) -> bool:
        now = datetime.now(timezone.utc).isoformat()
        try:
            status = await self.db.execute(
                """UPDATE sleep_sessions
                   SET clock_out_time = $1, duration = $2, updated_at = $3
                   WHERE id = $4 AND clock_out_time IS NULL""",
                clock_out_time, duration, now, session_id,
            )
        except asyncpg.CheckViolationError as exc:
            raise ValidationError("clock_out_time must be after clock_in_time") from exc
        return _affected(status) == 1

    async def get_by_id(self, session_id: int) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM sleep_sessions WHERE id = $1", session_id)
        return dict(row) if row else None

    async def find_latest_by_user(self, user_id: int) -> dict | None:
        row = await self.db.fetchrow(
            "SELECT * FROM sleep_sessions WHERE user_id = $1 ORDER BY id DESC LIMIT 1",
            user_id,
        )
        return dict(row) if row else None

    async def find_open_by_user(self, user_id: int) -> dict | None:
        row = await self.db.fetchrow(
            """SELECT * FROM sleep_sessions
               WHERE user_id = $1 AND clock_out_time IS NULL
               ORDER BY id DESC LIMIT 1""",
            user_id,
        )
        return dict(row) if row else None

    async def list_by_user(
        self, user_id: int, offset: int, limit: int, completed_only: bool = False,
    ) -> list[dict]:
        query = "SELECT * FROM sleep_sessions WHERE user_id = $1"
        if completed_only:
            query += " AND clock_out_time IS NOT NULL"
        query += " ORDER BY id DESC LIMIT $2 OFFSET $3"
        rows = await self.db.fetch(query, user_id, limit, offset)
        return [dict(r) for r in rows]

    async def count_by_user(self, user_id: int, completed_only: bool = False) -> int:
        query = "SELECT COUNT(*) FROM sleep_sessions WHERE user_id = $1"
        if completed_only:
            query += " AND clock_out_time IS NOT NULL"
        val = await self.db.fetchval(query, user_id)
        return val or 0

    async def list_completed_between(
        self, start: str, end: str, user_id: int | None = None,
    ) -> list[dict]:
        query = """SELECT * FROM sleep_sessions
                   WHERE clock_out_time IS NOT NULL
                     AND clock_in_time >= $1 AND clock_in_time < $2"""
        if user_id is not None:
            rows = await self.db.fetch(query + " AND user_id = $3 ORDER BY id", start, end, user_id)
        else:
            rows = await self.db.fetch(query + " ORDER BY id", start, end)
        return [dict(r) for r in rows]
