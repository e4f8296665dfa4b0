"""PostgreSQL implementation of CacheEntryRepository."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import asyncpg

from sleepfeed.db.repositories.postgres.users import _affected


class PostgresCacheEntryRepository:
    """Key/value rows with expiry and a per-row write version."""

    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def get(self, key: str, now: float) -> Any | None:
        row = await self.db.fetchrow(
            "SELECT value_json, expires_at FROM cache_entries WHERE key = $1", key
        )
        if not row:
            return None
        if row["expires_at"] is not None and row["expires_at"] <= now:
            await self.delete(key)
            return None
        return json.loads(row["value_json"])

    async def get_versioned(self, key: str, now: float) -> tuple[Any | None, int]:
        row = await self.db.fetchrow(
            "SELECT value_json, expires_at, version FROM cache_entries WHERE key = $1", key
        )
        if not row:
            return None, 0
        if row["expires_at"] is not None and row["expires_at"] <= now:
            return None, int(row["version"])
        return json.loads(row["value_json"]), int(row["version"])

    async def set(self, key: str, value: Any, expires_at: float | None) -> None:
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            """INSERT INTO cache_entries (key, value_json, expires_at, version, updated_at)
               VALUES ($1, $2, $3, 1, $4)
               ON CONFLICT(key) DO UPDATE SET
                   value_json=EXCLUDED.value_json,
                   expires_at=EXCLUDED.expires_at,
                   version=cache_entries.version + 1,
                   updated_at=EXCLUDED.updated_at""",
            key, json.dumps(value), expires_at, now,
        )

    async def compare_and_set(
        self, key: str, value: Any, expires_at: float | None, expected_version: int
    ) -> bool:
        now = datetime.now(timezone.utc).isoformat()
        if expected_version == 0:
            status = await self.db.execute(
                """INSERT INTO cache_entries (key, value_json, expires_at, version, updated_at)
                   VALUES ($1, $2, $3, 1, $4)
                   ON CONFLICT(key) DO UPDATE SET
                       value_json=EXCLUDED.value_json,
                       expires_at=EXCLUDED.expires_at,
                       version=1,
                       updated_at=EXCLUDED.updated_at
                   WHERE cache_entries.version = 0""",
                key, json.dumps(value), expires_at, now,
            )
        else:
            status = await self.db.execute(
                """UPDATE cache_entries
                   SET value_json = $1, expires_at = $2, version = version + 1, updated_at = $3
                   WHERE key = $4 AND version = $5""",
                json.dumps(value), expires_at, now, key, expected_version,
            )
        return _affected(status) == 1

    async def delete(self, key: str) -> None:
        await self.db.execute("DELETE FROM cache_entries WHERE key = $1", key)

    async def delete_prefix(self, prefix: str) -> int:
        status = await self.db.execute(
            "DELETE FROM cache_entries WHERE left(key, $1) = $2", len(prefix), prefix
        )
        return _affected(status)

    async def purge_expired(self, now: float) -> int:
        status = await self.db.execute(
            "DELETE FROM cache_entries WHERE expires_at IS NOT NULL AND expires_at <= $1", now
        )
        return _affected(status)
