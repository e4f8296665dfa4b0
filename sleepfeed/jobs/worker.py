"""In-process background worker that drains the job queue."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from sleepfeed import config, observability
from sleepfeed.errors import SleepFeedError

logger = logging.getLogger("sleepfeed.jobs")

Handler = Callable[[dict[str, Any]], Awaitable[None]]


class JobWorker:
    """Runs registered handlers for claimed jobs.

    ``run_pending`` drains whatever is due right now and is what tests and the
    rebuild script call. ``start`` runs the same drain in a polling task, and
    deletes settled jobs past retention every ``purge_interval`` seconds.
    """

    def __init__(
        self,
        queue,
        poll_interval: float | None = None,
        purge_interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.queue = queue
        self.poll_interval = (
            poll_interval if poll_interval is not None else config.JOB_POLL_INTERVAL_SECONDS
        )
        self.purge_interval = (
            purge_interval if purge_interval is not None else config.JOB_PURGE_INTERVAL_SECONDS
        )
        self._clock = clock
        self._last_purge: Optional[float] = None
        self._handlers: dict[str, Handler] = {}
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def register(self, kind: str, handler: Handler) -> None:
        self._handlers[kind] = handler

    async def start(self) -> None:
        if self._running:
            logger.warning("Job worker already running")
            return
        self._running = True
        # startup already purged; the next pass is one interval away
        self._last_purge = self._clock()
        self._task = asyncio.create_task(self._loop())
        logger.info("Job worker started (%s handlers)", len(self._handlers))

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Job worker stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_pending(self, limit: int | None = None) -> int:
        processed = 0
        while limit is None or processed < limit:
            job = await self.queue.claim()
            if job is None:
                break
            await self._run_one(job)
            processed += 1
        return processed

    async def maybe_purge(self) -> int:
        """Purge finished jobs if ``purge_interval`` has passed since the last purge."""
        now = self._clock()
        if self._last_purge is not None and now - self._last_purge < self.purge_interval:
            return 0
        self._last_purge = now
        return await self.queue.purge_finished()

    async def _run_one(self, job: dict) -> bool:
        kind = str(job.get("kind") or "")
        handler = self._handlers.get(kind)
        if handler is None:
            await self.queue.discard(job, f"no handler registered for {kind!r}")
            logger.error("Job %s has unknown kind %r", job["id"], kind)
            observability.record_job_result(kind, "unhandled")
            return False

        started = time.monotonic()
        try:
            with observability.start_span("job.run", {"job.kind": kind, "job.id": job["id"]}):
                await handler(job.get("payload") or {})
        except SleepFeedError as exc:
            status = await self.queue.fail(job, exc.message)
            observability.record_job_result(kind, status, (time.monotonic() - started) * 1000)
            return False
        except Exception as exc:
            logger.exception("Unexpected error in job %s (%s)", job["id"], kind)
            status = await self.queue.fail(job, f"{type(exc).__name__}: {exc}")
            observability.record_job_result(kind, status, (time.monotonic() - started) * 1000)
            return False

        await self.queue.complete(job["id"])
        observability.record_job_result(kind, "done", (time.monotonic() - started) * 1000)
        logger.info("Job %s (%s) done", job["id"], kind)
        return True

    async def _loop(self) -> None:
        try:
            while self._running:
                try:
                    await self.run_pending()
                except Exception as e:
                    logger.error(f"Job worker drain failed: {e}")
                try:
                    await self.maybe_purge()
                except Exception as e:
                    logger.error(f"Job purge failed: {e}")
                await self.queue.wait(self.poll_interval)
        except asyncio.CancelledError:
            logger.info("Job worker task cancelled")
