"""SQLite implementation of JobRepository (persistent background job queue)."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import aiosqlite


class SqliteJobRepository:
    """Jobs table with conditional claims and lease expiry."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def enqueue(self, kind: str, payload: dict, max_attempts: int, run_after: float) -> int:
        now = datetime.now(timezone.utc).isoformat()
        async with self.db.execute(
            """INSERT INTO jobs (
                kind, payload_json, status, attempts, max_attempts, run_after,
                locked_at, last_error, created_at, updated_at
            ) VALUES (?, ?, 'pending', 0, ?, ?, NULL, '', ?, ?)""",
            (kind, json.dumps(payload), max_attempts, run_after, now, now),
        ) as cur:
            job_id = cur.lastrowid
        await self.db.commit()
        return int(job_id or 0)

    async def claim_next(self, now: float, lease_seconds: float) -> dict | None:
        """Mark the oldest runnable job as running and return it.

        Runnable means pending and due, or running with an expired lease.
        """
        stale_before = now - lease_seconds
        for _ in range(5):
            async with self.db.execute(
                """SELECT id FROM jobs
                   WHERE (status = 'pending' AND run_after <= ?)
                      OR (status = 'running' AND locked_at <= ?)
                   ORDER BY id LIMIT 1""",
                (now, stale_before),
            ) as cur:
                row = await cur.fetchone()
            if not row:
                return None
            job_id = row[0]
            async with self.db.execute(
                """UPDATE jobs
                   SET status = 'running', attempts = attempts + 1, locked_at = ?, updated_at = ?
                   WHERE id = ?
                     AND ((status = 'pending' AND run_after <= ?)
                          OR (status = 'running' AND locked_at <= ?))""",
                (now, datetime.now(timezone.utc).isoformat(), job_id, now, stale_before),
            ) as cur:
                claimed = cur.rowcount
            await self.db.commit()
            if claimed == 1:
                return await self.get_by_id(job_id)
        return None

    async def mark_done(self, job_id: int, finished_at: float) -> None:
        await self.db.execute(
            """UPDATE jobs SET status = 'done', locked_at = NULL, last_error = '', finished_at = ?, updated_at = ?
               WHERE id = ?""",
            (finished_at, datetime.now(timezone.utc).isoformat(), job_id),
        )
        await self.db.commit()

    async def mark_retry(self, job_id: int, error: str, run_after: float) -> None:
        await self.db.execute(
            """UPDATE jobs SET status = 'pending', locked_at = NULL, last_error = ?, run_after = ?, updated_at = ?
               WHERE id = ?""",
            (error, run_after, datetime.now(timezone.utc).isoformat(), job_id),
        )
        await self.db.commit()

    async def mark_failed(self, job_id: int, error: str, finished_at: float) -> None:
        await self.db.execute(
            """UPDATE jobs SET status = 'failed', locked_at = NULL, last_error = ?, finished_at = ?, updated_at = ?
               WHERE id = ?""",
            (error, finished_at, datetime.now(timezone.utc).isoformat(), job_id),
        )
        await self.db.commit()

    async def purge_finished(self, before: float) -> int:
        """Delete done and failed jobs settled at or before ``before``."""
        async with self.db.execute(
            """DELETE FROM jobs
               WHERE status IN ('done', 'failed')
                 AND finished_at IS NOT NULL AND finished_at <= ?""",
            (before,),
        ) as cur:
            deleted = cur.rowcount
        await self.db.commit()
        return deleted

    async def get_by_id(self, job_id: int) -> dict | None:
        async with self.db.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)) as cur:
            row = await cur.fetchone()
        return self._row_to_dict(row) if row else None

    async def list_recent(self, limit: int, status: str | None = None) -> list[dict]:
        if status:
            query = "SELECT * FROM jobs WHERE status = ? ORDER BY id DESC LIMIT ?"
            params: tuple = (status, limit)
        else:
            query = "SELECT * FROM jobs ORDER BY id DESC LIMIT ?"
            params = (limit,)
        async with self.db.execute(query, params) as cur:
            return [self._row_to_dict(r) for r in await cur.fetchall()]

    async def counts_by_status(self) -> dict[str, int]:
        async with self.db.execute(
            "SELECT status, COUNT(*) FROM jobs GROUP BY status"
        ) as cur:
            return {str(r[0]): int(r[1]) for r in await cur.fetchall()}

    def _row_to_dict(self, row: Any) -> dict:
        data = dict(row)
        data["payload"] = json.loads(data.pop("payload_json") or "{}")
        return data
