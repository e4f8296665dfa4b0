"""SQLite implementation of CacheEntryRepository.

Stores derived, TTL-bound values as JSON next to the authoritative tables.
Expiry is an epoch timestamp; NULL means no expiry. Every write bumps the
row's ``version`` so read-modify-write callers can compare-and-set.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import aiosqlite


class SqliteCacheEntryRepository:
    """Key/value rows with expiry."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get(self, key: str, now: float) -> Any | None:
        async with self.db.execute(
            "SELECT value_json, expires_at FROM cache_entries WHERE key = ?", (key,)
        ) as cur:
            row = await cur.fetchone()
        if not row:
            return None
        expires_at = row[1]
        if expires_at is not None and expires_at <= now:
            await self.delete(key)
            return None
        return json.loads(row[0])

    async def get_versioned(self, key: str, now: float) -> tuple[Any | None, int]:
        """Value and version. An expired row reads as empty but keeps its version."""
        async with self.db.execute(
            "SELECT value_json, expires_at, version FROM cache_entries WHERE key = ?", (key,)
        ) as cur:
            row = await cur.fetchone()
        if not row:
            return None, 0
        if row[1] is not None and row[1] <= now:
            return None, int(row[2])
        return json.loads(row[0]), int(row[2])

    async def set(self, key: str, value: Any, expires_at: float | None) -> None:
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            """INSERT INTO cache_entries (key, value_json, expires_at, version, updated_at)
               VALUES (?, ?, ?, 1, ?)
               ON CONFLICT(key) DO UPDATE SET
                   value_json=excluded.value_json,
                   expires_at=excluded.expires_at,
                   version=cache_entries.version + 1,
                   updated_at=excluded.updated_at""",
            (key, json.dumps(value), expires_at, now),
        )
        await self.db.commit()

    async def compare_and_set(
        self, key: str, value: Any, expires_at: float | None, expected_version: int
    ) -> bool:
        """Write only if the row is still at ``expected_version``.

        Version 0 means "no row yet" (or a row written before versioning).
        """
        now = datetime.now(timezone.utc).isoformat()
        if expected_version == 0:
            sql = """INSERT INTO cache_entries (key, value_json, expires_at, version, updated_at)
                     VALUES (?, ?, ?, 1, ?)
                     ON CONFLICT(key) DO UPDATE SET
                         value_json=excluded.value_json,
                         expires_at=excluded.expires_at,
                         version=1,
                         updated_at=excluded.updated_at
                     WHERE cache_entries.version = 0"""
            params = (key, json.dumps(value), expires_at, now)
        else:
            sql = """UPDATE cache_entries
                     SET value_json = ?, expires_at = ?, version = version + 1, updated_at = ?
                     WHERE key = ? AND version = ?"""
            params = (json.dumps(value), expires_at, now, key, expected_version)
        async with self.db.execute(sql, params) as cur:
            written = cur.rowcount
        await self.db.commit()
        return written == 1

    async def delete(self, key: str) -> None:
        await self.db.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        await self.db.commit()

    async def delete_prefix(self, prefix: str) -> int:
        async with self.db.execute(
            "DELETE FROM cache_entries WHERE substr(key, 1, ?) = ?",
            (len(prefix), prefix),
        ) as cur:
            deleted = cur.rowcount
        await self.db.commit()
        return deleted

    async def purge_expired(self, now: float) -> int:
        async with self.db.execute(
            "DELETE FROM cache_entries WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (now,),
        ) as cur:
            deleted = cur.rowcount
        await self.db.commit()
        return deleted
