"""SQLite implementation of SleepSessionRepository."""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

import aiosqlite

from sleepfeed.errors import ConflictError, NotFoundError, SleepFeedError, ValidationError


def _integrity_error(exc: sqlite3.IntegrityError) -> SleepFeedError:
    message = str(exc)
    if "FOREIGN KEY" in message:
        return NotFoundError("user not found")
    if "UNIQUE" in message:
        return ConflictError("already clocked in")
    if "CHECK" in message:
        return ValidationError("clock_out_time must be after clock_in_time")
    if "NOT NULL" in message:
        return ValidationError("clock_in_time is required")
    return ValidationError(message)


class SqliteSleepSessionRepository:
    """SQLite-backed sleep session log. One open row per user at most."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, user_id: int, clock_in_time: str) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        try:
            async with self.db.execute(
                """INSERT INTO sleep_sessions (
                    user_id, clock_in_time, clock_out_time, duration, created_at, updated_at
                ) VALUES (?, ?, NULL, 0, ?, ?)""",
                (user_id, clock_in_time, now, now),
            ) as cur:
                session_id = cur.lastrowid
        except sqlite3.IntegrityError as exc:
            # only this statement is undone; the shared connection keeps other writers' work
            raise _integrity_error(exc) from exc
        await self.db.commit()
        return {
            "id": session_id,
            "user_id": user_id,
            "clock_in_time": clock_in_time,
            "clock_out_time": None,
            "duration": 0,
            "created_at": now,
            "updated_at": now,
        }

    async def close_if_open(self, session_id: int, clock_out_time: str, duration: int) -> bool:
        """Record the clock-out only while the row is still open.

        Returns False when another closer got there first (or the row is gone).
        """
        now = datetime.now(timezone.utc).isoformat()
        try:
            async with self.db.execute(
                """UPDATE sleep_sessions
                   SET clock_out_time = ?, duration = ?, updated_at = ?
                   WHERE id = ? AND clock_out_time IS NULL""",
                (clock_out_time, duration, now, session_id),
            ) as cur:
                updated = cur.rowcount
        except sqlite3.IntegrityError as exc:
            raise _integrity_error(exc) from exc
        await self.db.commit()
        return updated == 1

    async def get_by_id(self, session_id: int) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM sleep_sessions WHERE id = ?", (session_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def find_latest_by_user(self, user_id: int) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM sleep_sessions WHERE user_id = ? ORDER BY id DESC LIMIT 1",
            (user_id,),
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def find_open_by_user(self, user_id: int) -> dict | None:
        async with self.db.execute(
            """SELECT * FROM sleep_sessions
               WHERE user_id = ? AND clock_out_time IS NULL
               ORDER BY id DESC LIMIT 1""",
            (user_id,),
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_by_user(
        self, user_id: int, offset: int, limit: int, completed_only: bool = False,
    ) -> list[dict]:
        query = "SELECT * FROM sleep_sessions WHERE user_id = ?"
        if completed_only:
            query += " AND clock_out_time IS NOT NULL"
        query += " ORDER BY id DESC LIMIT ? OFFSET ?"
        async with self.db.execute(query, (user_id, limit, offset)) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def count_by_user(self, user_id: int, completed_only: bool = False) -> int:
        query = "SELECT COUNT(*) FROM sleep_sessions WHERE user_id = ?"
        if completed_only:
            query += " AND clock_out_time IS NOT NULL"
        async with self.db.execute(query, (user_id,)) as cur:
            row = await cur.fetchone()
        return row[0] if row else 0

    async def list_completed_between(
        self, start: str, end: str, user_id: int | None = None,
    ) -> list[dict]:
        """Completed sessions whose clock-in falls in [start, end)."""
        query = """SELECT * FROM sleep_sessions
                   WHERE clock_out_time IS NOT NULL
                     AND clock_in_time >= ? AND clock_in_time < ?"""
        params: tuple = (start, end)
        if user_id is not None:
            query += " AND user_id = ?"
            params = (start, end, user_id)
        query += " ORDER BY id"
        async with self.db.execute(query, params) as cur:
            return [dict(r) for r in await cur.fetchall()]
