import unittest
from datetime import date, datetime, timedelta, timezone

import aiosqlite

from sleepfeed.cache.backends import MemoryCacheBackend
from sleepfeed.cache.keys import weekly_bucket_key
from sleepfeed.db.sqlite_migrations import run_migrations
from sleepfeed.scripts.rebuild_weekly_buckets import rebuild_week
from sleepfeed.services.container import build_services


class _Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


class RebuildWeeklyBucketsTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.clock = _Clock(datetime(2024, 5, 14, 22, 0, tzinfo=timezone.utc))
        self.services = build_services(self.db, cache_backend=MemoryCacheBackend(), now=self.clock)
        self.alice = (await self.services.users.create("alice"))["id"]
        self.bob = (await self.services.users.create("bob"))["id"]
        self.week = date(2024, 5, 13)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def _sleep(self, user_id: int, hours: int) -> None:
        await self.services.clock.clock_in(user_id)
        self.clock.now += timedelta(hours=hours)
        await self.services.clock.clock_out(user_id)
        self.clock.now += timedelta(hours=1)

    async def test_rebuild_folds_sessions_without_the_queue(self) -> None:
        await self._sleep(self.alice, 6)
        await self._sleep(self.alice, 8)
        await self._sleep(self.bob, 7)

        stats = await rebuild_week(self.services, self.week)
        self.assertEqual(stats, {"sessions": 3, "users": 2})
        self.assertEqual(
            [e["duration"] for e in await self.services.aggregator.read(self.alice, self.week)],
            [28800, 21600],
        )

        # the queued jobs still run cleanly afterwards
        await self.services.worker.run_pending()
        self.assertEqual(len(await self.services.aggregator.read(self.alice, self.week)), 2)

    async def test_rebuild_single_user_with_reset(self) -> None:
        await self._sleep(self.alice, 6)
        await self._sleep(self.bob, 7)
        await self.services.cache.set(
            weekly_bucket_key(self.alice, self.week),
            [{"id": 999, "clock_in_time": "", "clock_out_time": "", "duration": 1, "created_at": ""}],
            60,
        )

        stats = await rebuild_week(self.services, self.week, user_id=self.alice, reset=True)
        self.assertEqual(stats, {"sessions": 1, "users": 1})
        self.assertEqual(
            [e["duration"] for e in await self.services.aggregator.read(self.alice, self.week)],
            [21600],
        )
        self.assertEqual(await self.services.aggregator.read(self.bob, self.week), [])


if __name__ == "__main__":
    unittest.main()
