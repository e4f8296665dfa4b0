import unittest

import aiosqlite

from sleepfeed.db.sqlite_migrations import SCHEMA_VERSION, run_migrations

_V1_CACHE_AND_JOBS = """
CREATE TABLE schema_version (version INTEGER NOT NULL, applied TEXT NOT NULL DEFAULT (datetime('now')));
INSERT INTO schema_version (version) VALUES (1);
CREATE TABLE cache_entries (
    key TEXT PRIMARY KEY, value_json TEXT NOT NULL, expires_at REAL, updated_at TEXT NOT NULL
);
INSERT INTO cache_entries VALUES ('user:1:weekly_sleep:2024-05-13', '[]', NULL, '');
CREATE TABLE jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT, kind TEXT NOT NULL, payload_json TEXT NOT NULL DEFAULT '{}',
    status TEXT NOT NULL DEFAULT 'pending', attempts INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL DEFAULT 5, run_after REAL NOT NULL DEFAULT 0, locked_at REAL,
    last_error TEXT DEFAULT '', created_at TEXT NOT NULL, updated_at TEXT NOT NULL
);
"""


class SqliteMigrationTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def _columns(self, table: str) -> set[str]:
        async with self.db.execute(f"PRAGMA table_info({table})") as cur:
            return {row[1] for row in await cur.fetchall()}

    async def test_fresh_database_gets_current_schema(self) -> None:
        await run_migrations(self.db)
        self.assertIn("version", await self._columns("cache_entries"))
        self.assertIn("finished_at", await self._columns("jobs"))
        async with self.db.execute("SELECT MAX(version) FROM schema_version") as cur:
            self.assertEqual((await cur.fetchone())[0], SCHEMA_VERSION)

    async def test_version_one_database_is_upgraded_in_place(self) -> None:
        await self.db.executescript(_V1_CACHE_AND_JOBS)
        await self.db.commit()

        await run_migrations(self.db)
        await run_migrations(self.db)

        self.assertIn("version", await self._columns("cache_entries"))
        self.assertIn("finished_at", await self._columns("jobs"))
        async with self.db.execute("SELECT key, version FROM cache_entries") as cur:
            rows = [tuple(r) for r in await cur.fetchall()]
        self.assertEqual(rows, [("user:1:weekly_sleep:2024-05-13", 0)])
        async with self.db.execute("SELECT MAX(version) FROM schema_version") as cur:
            self.assertEqual((await cur.fetchone())[0], SCHEMA_VERSION)


if __name__ == "__main__":
    unittest.main()
