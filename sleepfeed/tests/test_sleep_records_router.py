import types
import unittest
from datetime import datetime, timedelta, timezone

import aiosqlite
from fastapi import HTTPException

from sleepfeed.cache.backends import MemoryCacheBackend
from sleepfeed.db.sqlite_migrations import run_migrations
from sleepfeed.routers import feed as feed_router
from sleepfeed.routers import jobs as jobs_router
from sleepfeed.routers import sleep_records as sleep_records_router
from sleepfeed.services.container import build_services


class _Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


class SleepRecordsRouterTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.clock = _Clock(datetime(2024, 5, 14, 22, 0, tzinfo=timezone.utc))
        self.services = build_services(self.db, cache_backend=MemoryCacheBackend(), now=self.clock)
        self.alice = await self.services.users.create("alice")
        self.bob = await self.services.users.create("bob")
        self.request = types.SimpleNamespace(
            app=types.SimpleNamespace(state=types.SimpleNamespace(services=self.services))
        )

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_clock_in_and_out_round_trip(self) -> None:
        started = await sleep_records_router.clock_in(self.request, x_user_id=str(self.alice["id"]))
        self.assertEqual(started.message, "Clocked in")
        self.assertIsNone(started.sleep_record.clock_out_time)

        self.clock.now += timedelta(hours=8)
        closed = await sleep_records_router.clock_out(self.request, x_user_id=str(self.alice["id"]))
        self.assertEqual(closed.message, "Clocked out")
        self.assertEqual(closed.sleep_record.id, started.sleep_record.id)
        self.assertEqual(closed.sleep_record.duration, 28800)

    async def test_clock_out_errors_map_to_status_codes(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await sleep_records_router.clock_out(self.request, x_user_id=str(self.alice["id"]))
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.detail, "no session to close")

        await sleep_records_router.clock_in(self.request, x_user_id=str(self.alice["id"]))
        with self.assertRaises(HTTPException) as ctx:
            await sleep_records_router.clock_out(self.request, x_user_id=str(self.alice["id"]))
        self.assertEqual(ctx.exception.status_code, 422)

        self.clock.now += timedelta(hours=1)
        await sleep_records_router.clock_out(self.request, x_user_id=str(self.alice["id"]))
        with self.assertRaises(HTTPException) as ctx:
            await sleep_records_router.clock_out(self.request, x_user_id=str(self.alice["id"]))
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(ctx.exception.detail, "already completed")

    async def test_double_clock_in_is_conflict(self) -> None:
        await sleep_records_router.clock_in(self.request, x_user_id=str(self.alice["id"]))
        with self.assertRaises(HTTPException) as ctx:
            await sleep_records_router.clock_in(self.request, x_user_id=str(self.alice["id"]))
        self.assertEqual(ctx.exception.status_code, 409)

    async def test_acting_user_header_is_required(self) -> None:
        for header, status in ((None, 401), ("  ", 401), ("abc", 401), ("9999", 404)):
            with self.assertRaises(HTTPException) as ctx:
                await sleep_records_router.clock_in(self.request, x_user_id=header)
            self.assertEqual(ctx.exception.status_code, status)

    async def test_list_is_scoped_to_acting_user(self) -> None:
        await sleep_records_router.clock_in(self.request, x_user_id=str(self.alice["id"]))
        self.clock.now += timedelta(hours=2)
        await sleep_records_router.clock_out(self.request, x_user_id=str(self.alice["id"]))
        self.clock.now += timedelta(hours=12)
        await sleep_records_router.clock_in(self.request, x_user_id=str(self.alice["id"]))
        await sleep_records_router.clock_in(self.request, x_user_id=str(self.bob["id"]))

        page = await sleep_records_router.list_sleep_records(
            self.request, x_user_id=str(self.alice["id"]), offset=0, limit=50, completed_only=False,
        )
        self.assertEqual(page.total, 2)
        self.assertEqual({r.user_id for r in page.items}, {self.alice["id"]})

        done = await sleep_records_router.list_sleep_records(
            self.request, x_user_id=str(self.alice["id"]), offset=0, limit=50, completed_only=True,
        )
        self.assertEqual(done.total, 1)
        self.assertEqual(done.items[0].duration, 7200)

    async def test_missing_services_is_503(self) -> None:
        request = types.SimpleNamespace(app=types.SimpleNamespace(state=types.SimpleNamespace()))
        with self.assertRaises(HTTPException) as ctx:
            await sleep_records_router.clock_in(request, x_user_id="1")
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_feed_endpoint_after_worker_run(self) -> None:
        await self.services.graph.follow(self.bob["id"], self.alice["id"])
        await sleep_records_router.clock_in(self.request, x_user_id=str(self.alice["id"]))
        self.clock.now += timedelta(hours=8)
        await sleep_records_router.clock_out(self.request, x_user_id=str(self.alice["id"]))
        await self.services.worker.run_pending()

        self.clock.now = datetime(2024, 5, 21, 8, 0, tzinfo=timezone.utc)
        feed = await feed_router.get_feed(
            self.request, x_user_id=str(self.bob["id"]), week=None, offset=0, limit=100,
        )
        self.assertEqual(feed.week_start, "2024-05-13")
        self.assertEqual(feed.total, 1)
        self.assertEqual(feed.items[0].duration, 28800)
        self.assertEqual(feed.items[0].user.id, self.alice["id"])

        explicit = await feed_router.get_feed(
            self.request, x_user_id=str(self.bob["id"]), week="2024-05-16", offset=0, limit=100,
        )
        self.assertEqual(explicit.total, 1)

        with self.assertRaises(HTTPException) as ctx:
            await feed_router.get_feed(
                self.request, x_user_id=str(self.bob["id"]), week="last week", offset=0, limit=100,
            )
        self.assertEqual(ctx.exception.status_code, 422)

    async def test_jobs_endpoints_report_queue_state(self) -> None:
        await sleep_records_router.clock_in(self.request, x_user_id=str(self.alice["id"]))
        self.clock.now += timedelta(hours=1)
        await sleep_records_router.clock_out(self.request, x_user_id=str(self.alice["id"]))

        status = await jobs_router.get_jobs_status(self.request)
        self.assertEqual(status["counts"]["pending"], 1)
        self.assertFalse(status["workerRunning"])

        await self.services.worker.run_pending()
        jobs = await jobs_router.list_jobs(self.request, status="done", limit=10)
        self.assertEqual(len(jobs), 1)
        self.assertEqual(jobs[0].kind, "weekly_sleep_aggregation")
        self.assertEqual(jobs[0].attempts, 1)


if __name__ == "__main__":
    unittest.main()
