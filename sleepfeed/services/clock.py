"""Clock-in / clock-out state transitions for sleep sessions."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sleepfeed import observability
from sleepfeed.date_utils import elapsed_seconds, parse_iso, to_iso, utcnow
from sleepfeed.errors import ConflictError, NotFoundError, SleepFeedError, ValidationError
from sleepfeed.models import SleepSession

logger = logging.getLogger("sleepfeed.clock")


class SleepClock:
    """Opens and closes sleep sessions.

    The store's "close only while still open" update decides races between
    concurrent clock-outs; the cached pointer only saves a lookup.
    """

    def __init__(
        self,
        sessions,
        session_cache,
        aggregator,
        now: Callable[[], datetime] = utcnow,
    ):
        self.sessions = sessions
        self.session_cache = session_cache
        self.aggregator = aggregator
        self._now = now

    async def clock_in(self, user_id: int) -> SleepSession:
        with observability.start_span("sleep.clock_in", {"user.id": user_id}):
            try:
                row = await self.sessions.create(user_id, to_iso(self._now()))
            except SleepFeedError as exc:
                observability.record_clock_event("clock_in", type(exc).__name__)
                raise
            await self.session_cache.remember_open(row)

        observability.record_clock_event("clock_in", "ok")
        logger.info("User %s clocked in (session %s)", user_id, row["id"])
        return SleepSession.from_row(row)

    async def clock_out(self, user_id: int) -> SleepSession:
        with observability.start_span("sleep.clock_out", {"user.id": user_id}):
            try:
                session = await self._close(user_id)
            except SleepFeedError as exc:
                observability.record_clock_event("clock_out", type(exc).__name__)
                raise

        observability.record_clock_event("clock_out", "ok")
        logger.info(
            "User %s clocked out (session %s, %ss)", user_id, session.id, session.duration
        )
        return session

    async def _resolve_candidate(self, user_id: int) -> dict | None:
        candidate = await self.session_cache.resolve_open(user_id)
        if candidate is not None:
            return candidate
        return await self.sessions.find_latest_by_user(user_id)

    async def _close(self, user_id: int) -> SleepSession:
        candidate = await self._resolve_candidate(user_id)
        if candidate is None:
            raise NotFoundError("no session to close")
        if candidate.get("clock_out_time"):
            raise ConflictError("already completed")

        clock_in = parse_iso(candidate.get("clock_in_time"))
        if clock_in is None:
            raise ValidationError("clock_in_time is missing")
        now = self._now()
        if now <= clock_in:
            raise ValidationError("clock_out_time must be after clock_in_time")

        clock_out_time = to_iso(now)
        duration = elapsed_seconds(clock_in, now)
        closed = await self.sessions.close_if_open(int(candidate["id"]), clock_out_time, duration)
        if not closed:
            raise ConflictError("already completed")

        row = dict(candidate)
        row["clock_out_time"] = clock_out_time
        row["duration"] = duration
        await self.session_cache.forget(user_id, int(row["id"]))
        await self._schedule_aggregation(user_id, row)
        return SleepSession.from_row(row)

    async def _schedule_aggregation(self, user_id: int, row: dict) -> None:
        try:
            await self.aggregator.enqueue(user_id, row)
        except Exception as exc:
            logger.error(
                "Could not enqueue weekly aggregation for session %s: %s", row["id"], exc
            )
            observability.record_job_result(self.aggregator.job_kind, "enqueue_failed")
