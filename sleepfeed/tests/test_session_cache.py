import unittest

import aiosqlite

from sleepfeed.cache.backends import MemoryCacheBackend
from sleepfeed.cache.keys import open_session_key
from sleepfeed.cache.store import CacheStore
from sleepfeed.db.repositories.sleep_sessions import SqliteSleepSessionRepository
from sleepfeed.db.repositories.users import SqliteUserRepository
from sleepfeed.db.sqlite_migrations import run_migrations
from sleepfeed.services.session_cache import SessionCache


T0 = "2024-05-14T22:00:00.000000+00:00"
T1 = "2024-05-15T06:00:00.000000+00:00"


class SessionCacheTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        users = SqliteUserRepository(self.db)
        self.alice = (await users.create("alice"))["id"]
        self.bob = (await users.create("bob"))["id"]
        self.sessions = SqliteSleepSessionRepository(self.db)
        self.cache = CacheStore(MemoryCacheBackend())
        self.session_cache = SessionCache(self.cache, self.sessions, ttl=3600)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_remembered_open_session_resolves(self) -> None:
        row = await self.sessions.create(self.alice, T0)
        self.assertTrue(await self.session_cache.remember_open(row))
        resolved = await self.session_cache.resolve_open(self.alice)
        self.assertEqual(resolved["id"], row["id"])

    async def test_missing_pointer_resolves_to_none(self) -> None:
        await self.sessions.create(self.alice, T0)
        self.assertIsNone(await self.session_cache.resolve_open(self.alice))

    async def test_pointer_to_closed_session_is_discarded(self) -> None:
        row = await self.sessions.create(self.alice, T0)
        await self.session_cache.remember_open(row)
        await self.sessions.close_if_open(row["id"], T1, 28800)

        self.assertIsNone(await self.session_cache.resolve_open(self.alice))
        self.assertIsNone(await self.cache.get(open_session_key(self.alice)))

    async def test_pointer_to_other_users_session_is_discarded(self) -> None:
        bobs = await self.sessions.create(self.bob, T0)
        await self.cache.set(open_session_key(self.alice), {"id": bobs["id"]}, 60)
        self.assertIsNone(await self.session_cache.resolve_open(self.alice))

    async def test_forget_only_drops_matching_pointer(self) -> None:
        row = await self.sessions.create(self.alice, T0)
        await self.session_cache.remember_open(row)

        await self.session_cache.forget(self.alice, row["id"] + 100)
        self.assertIsNotNone(await self.cache.get(open_session_key(self.alice)))

        await self.session_cache.forget(self.alice, row["id"])
        self.assertIsNone(await self.cache.get(open_session_key(self.alice)))


if __name__ == "__main__":
    unittest.main()
