"""PostgreSQL implementation of JobRepository."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import asyncpg

from sleepfeed.db.repositories.postgres.users import _affected


class PostgresJobRepository:
    """Jobs table; claims use SKIP LOCKED so concurrent workers never share a job."""

    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def enqueue(self, kind: str, payload: dict, max_attempts: int, run_after: float) -> int:
        now = datetime.now(timezone.utc).isoformat()
        job_id = await self.db.fetchval(
            """INSERT INTO jobs (
                kind, payload_json, status, attempts, max_attempts, run_after,
                locked_at, last_error, created_at, updated_at
            ) VALUES ($1, $2, 'pending', 0, $3, $4, NULL, '', $5, $6)
            RETURNING id""",
            kind, json.dumps(payload), max_attempts, run_after, now, now,
        )
        return int(job_id)

    async def claim_next(self, now: float, lease_seconds: float) -> dict | None:
        row = await self.db.fetchrow(
            """UPDATE jobs
               SET status = 'running', attempts = attempts + 1, locked_at = $1, updated_at = $3
               WHERE id = (
                   SELECT id FROM jobs
                   WHERE (status = 'pending' AND run_after <= $1)
                      OR (status = 'running' AND locked_at <= $2)
                   ORDER BY id
                   LIMIT 1
                   FOR UPDATE SKIP LOCKED
               )
               RETURNING *""",
            now, now - lease_seconds, datetime.now(timezone.utc).isoformat(),
        )
        return self._row_to_dict(row) if row else None

    async def mark_done(self, job_id: int, finished_at: float) -> None:
        await self.db.execute(
            """UPDATE jobs SET status = 'done', locked_at = NULL, last_error = '', finished_at = $1, updated_at = $2
               WHERE id = $3""",
            finished_at, datetime.now(timezone.utc).isoformat(), job_id,
        )

    async def mark_retry(self, job_id: int, error: str, run_after: float) -> None:
        await self.db.execute(
            """UPDATE jobs SET status = 'pending', locked_at = NULL, last_error = $1, run_after = $2, updated_at = $3
               WHERE id = $4""",
            error, run_after, datetime.now(timezone.utc).isoformat(), job_id,
        )

    async def mark_failed(self, job_id: int, error: str, finished_at: float) -> None:
        await self.db.execute(
            """UPDATE jobs SET status = 'failed', locked_at = NULL, last_error = $1, finished_at = $2, updated_at = $3
               WHERE id = $4""",
            error, finished_at, datetime.now(timezone.utc).isoformat(), job_id,
        )

    async def purge_finished(self, before: float) -> int:
        status = await self.db.execute(
            """DELETE FROM jobs
               WHERE status IN ('done', 'failed')
                 AND finished_at IS NOT NULL AND finished_at <= $1""",
            before,
        )
        return _affected(status)

    async def get_by_id(self, job_id: int) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM jobs WHERE id = $1", job_id)
        return self._row_to_dict(row) if row else None

    async def list_recent(self, limit: int, status: str | None = None) -> list[dict]:
        if status:
            rows = await self.db.fetch(
                "SELECT * FROM jobs WHERE status = $1 ORDER BY id DESC LIMIT $2", status, limit
            )
        else:
            rows = await self.db.fetch("SELECT * FROM jobs ORDER BY id DESC LIMIT $1", limit)
        return [self._row_to_dict(r) for r in rows]

    async def counts_by_status(self) -> dict[str, int]:
        rows = await self.db.fetch("SELECT status, COUNT(*) AS n FROM jobs GROUP BY status")
        return {str(r["status"]): int(r["n"]) for r in rows}

    def _row_to_dict(self, row: Any) -> dict:
        data = dict(row)
        data["payload"] = json.loads(data.pop("payload_json") or "{}")
        return data
