import asyncio
import unittest
from datetime import datetime, timedelta, timezone

import aiosqlite

from sleepfeed.cache.backends import MemoryCacheBackend
from sleepfeed.cache.keys import open_session_key
from sleepfeed.db.sqlite_migrations import run_migrations
from sleepfeed.errors import ConflictError, NotFoundError, ValidationError
from sleepfeed.models import SleepSession
from sleepfeed.services.container import build_services


class _Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class _BrokenBackend:
    async def get(self, key):
        raise ConnectionError("cache down")

    async def set(self, key, value, ttl):
        raise ConnectionError("cache down")

    async def delete(self, key):
        raise ConnectionError("cache down")

    async def delete_prefix(self, prefix):
        raise ConnectionError("cache down")

    async def purge_expired(self):
        raise ConnectionError("cache down")


class _FailingQueue:
    async def enqueue(self, kind, payload, delay=0.0):
        raise RuntimeError("queue unavailable")


class SleepClockTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.clock = _Clock(datetime(2024, 5, 14, 22, 0, tzinfo=timezone.utc))
        self.services = build_services(self.db, cache_backend=MemoryCacheBackend(), now=self.clock)
        self.user = await self.services.users.create("alice")
        self.user_id = self.user["id"]

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_clock_out_duration_is_floored_elapsed_seconds(self) -> None:
        cases = [
            (timedelta(hours=8), 28800),
            (timedelta(seconds=1, milliseconds=500), 1),
            (timedelta(seconds=59, microseconds=999999), 59),
            (timedelta(days=1, seconds=7), 86407),
        ]
        for delta, expected in cases:
            started = await self.services.clock.clock_in(self.user_id)
            self.assertFalse(started.completed)
            self.assertEqual(started.duration, 0)

            self.clock.now = self.clock.now + delta
            closed = await self.services.clock.clock_out(self.user_id)

            self.assertEqual(closed.id, started.id)
            self.assertTrue(closed.completed)
            self.assertEqual(closed.duration, expected)
            stored = await self.services.sessions.get_by_id(started.id)
            self.assertEqual(stored["duration"], expected)
            self.assertEqual(stored["clock_out_time"], closed.clock_out_time)
            self.clock.advance(minutes=5)

    async def test_clock_out_without_any_session_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            await self.services.clock.clock_out(self.user_id)
        self.assertEqual(ctx.exception.message, "no session to close")
        self.assertEqual(await self.services.sessions.count_by_user(self.user_id), 0)
        self.assertEqual(await self.services.queue.stats(), {"pending": 0, "running": 0, "done": 0, "failed": 0})

    async def test_second_clock_out_conflicts_and_keeps_first_close(self) -> None:
        started = await self.services.clock.clock_in(self.user_id)
        self.clock.advance(hours=7)
        first = await self.services.clock.clock_out(self.user_id)

        self.clock.advance(hours=2)
        with self.assertRaises(ConflictError) as ctx:
            await self.services.clock.clock_out(self.user_id)
        self.assertEqual(ctx.exception.message, "already completed")

        stored = await self.services.sessions.get_by_id(started.id)
        self.assertEqual(stored["clock_out_time"], first.clock_out_time)
        self.assertEqual(stored["duration"], 7 * 3600)
        stats = await self.services.queue.stats()
        self.assertEqual(stats["pending"], 1)

    async def test_concurrent_clock_outs_close_the_session_once(self) -> None:
        started = await self.services.clock.clock_in(self.user_id)
        self.clock.advance(hours=6)

        results = await asyncio.gather(
            self.services.clock.clock_out(self.user_id),
            self.services.clock.clock_out(self.user_id),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, SleepSession)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(conflicts), 1)

        stored = await self.services.sessions.get_by_id(started.id)
        self.assertEqual(stored["clock_out_time"], successes[0].clock_out_time)
        self.assertEqual(stored["duration"], 6 * 3600)
        self.assertEqual((await self.services.queue.stats())["pending"], 1)

    async def test_rejected_clock_in_does_not_undo_concurrent_clock_out(self) -> None:
        other_id = (await self.services.users.create("bob"))["id"]
        await self.services.clock.clock_in(self.user_id)

        async def delayed(ticks, coro):
            for _ in range(ticks):
                await asyncio.sleep(0)
            return await coro

        rounds = 30
        for i in range(rounds):
            started = await self.services.clock.clock_in(other_id)
            self.clock.advance(minutes=30)

            rejected, closed = await asyncio.gather(
                delayed(i % 15, self.services.clock.clock_in(self.user_id)),
                self.services.clock.clock_out(other_id),
                return_exceptions=True,
            )

            self.assertIsInstance(rejected, ConflictError)
            self.assertIsInstance(closed, SleepSession)
            stored = await self.services.sessions.get_by_id(started.id)
            self.assertIsNotNone(stored, f"round {i}: session row lost")
            self.assertEqual(stored["clock_out_time"], closed.clock_out_time, f"round {i}")
            self.assertEqual(stored["duration"], 1800)
            self.clock.advance(minutes=1)

        self.assertFalse(self.db.in_transaction)
        self.assertEqual(await self.services.sessions.count_by_user(other_id), rounds)
        self.assertEqual((await self.services.queue.stats())["pending"], rounds)

    async def test_clock_in_while_open_is_rejected(self) -> None:
        await self.services.clock.clock_in(self.user_id)
        self.clock.advance(minutes=1)
        with self.assertRaises(ConflictError):
            await self.services.clock.clock_in(self.user_id)
        self.assertEqual(await self.services.sessions.count_by_user(self.user_id), 1)

    async def test_clock_in_for_unknown_user_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            await self.services.clock.clock_in(9999)

    async def test_clock_out_at_clock_in_instant_is_validation_error(self) -> None:
        started = await self.services.clock.clock_in(self.user_id)
        with self.assertRaises(ValidationError):
            await self.services.clock.clock_out(self.user_id)
        stored = await self.services.sessions.get_by_id(started.id)
        self.assertIsNone(stored["clock_out_time"])

    async def test_clock_in_sets_pointer_and_clock_out_clears_it(self) -> None:
        started = await self.services.clock.clock_in(self.user_id)
        pointer = await self.services.cache.get(open_session_key(self.user_id))
        self.assertEqual(pointer["id"], started.id)
        self.assertEqual(pointer["clock_in_time"], started.clock_in_time)

        self.clock.advance(hours=1)
        await self.services.clock.clock_out(self.user_id)
        self.assertIsNone(await self.services.cache.get(open_session_key(self.user_id)))

    async def test_clock_out_ignores_stale_pointer(self) -> None:
        started = await self.services.clock.clock_in(self.user_id)
        await self.services.cache.set(
            open_session_key(self.user_id),
            {"id": 424242, "clock_in_time": "2000-01-01T00:00:00.000000+00:00", "created_at": ""},
            60,
        )
        self.clock.advance(hours=3)

        closed = await self.services.clock.clock_out(self.user_id)
        self.assertEqual(closed.id, started.id)
        self.assertEqual(closed.duration, 3 * 3600)

    async def test_clock_operations_survive_cache_outage(self) -> None:
        services = build_services(self.db, cache_backend=_BrokenBackend(), now=self.clock)
        started = await services.clock.clock_in(self.user_id)
        self.clock.advance(hours=2)
        closed = await services.clock.clock_out(self.user_id)
        self.assertEqual(closed.id, started.id)
        self.assertEqual(closed.duration, 7200)

    async def test_enqueue_failure_keeps_the_close(self) -> None:
        self.services.aggregator.queue = _FailingQueue()
        started = await self.services.clock.clock_in(self.user_id)
        self.clock.advance(hours=2)

        closed = await self.services.clock.clock_out(self.user_id)
        self.assertTrue(closed.completed)
        stored = await self.services.sessions.get_by_id(started.id)
        self.assertEqual(stored["duration"], 7200)


if __name__ == "__main__":
    unittest.main()
