"""Persistent at-least-once job queue over the ``jobs`` table."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from sleepfeed import config

logger = logging.getLogger("sleepfeed.jobs")


class JobQueue:
    """Enqueue, claim and settle background jobs.

    A claimed job whose lease runs out before it is settled becomes claimable
    again, so handlers must tolerate running more than once.
    """

    def __init__(
        self,
        repo,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
        lease_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.repo = repo
        self.max_attempts = max_attempts if max_attempts is not None else config.JOB_MAX_ATTEMPTS
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else config.JOB_RETRY_BACKOFF_SECONDS
        )
        self.lease_seconds = lease_seconds if lease_seconds is not None else config.JOB_LEASE_SECONDS
        self._clock = clock
        self._wake = asyncio.Event()

    async def enqueue(self, kind: str, payload: dict[str, Any], delay: float = 0.0) -> int:
        job_id = await self.repo.enqueue(
            kind,
            payload,
            max(1, self.max_attempts),
            self._clock() + max(0.0, delay),
        )
        self._wake.set()
        logger.debug("Enqueued job %s (%s)", job_id, kind)
        return job_id

    async def claim(self) -> dict | None:
        return await self.repo.claim_next(self._clock(), self.lease_seconds)

    async def complete(self, job_id: int) -> None:
        await self.repo.mark_done(job_id, self._clock())

    def retry_delay(self, attempts: int) -> float:
        return self.backoff_seconds * (2 ** max(0, attempts - 1))

    async def fail(self, job: dict, error: str) -> str:
        """Schedule a retry, or mark the job failed once attempts are exhausted.

        Returns the resulting status.
        """
        attempts = int(job.get("attempts") or 0)
        max_attempts = int(job.get("max_attempts") or self.max_attempts)
        if attempts >= max_attempts:
            await self.repo.mark_failed(job["id"], error, self._clock())
            logger.error(
                "Job %s (%s) failed after %s attempts: %s",
                job["id"], job.get("kind"), attempts, error,
            )
            return "failed"
        delay = self.retry_delay(attempts)
        await self.repo.mark_retry(job["id"], error, self._clock() + delay)
        logger.warning(
            "Job %s (%s) attempt %s/%s failed, retrying in %.1fs: %s",
            job["id"], job.get("kind"), attempts, max_attempts, delay, error,
        )
        return "pending"

    async def discard(self, job: dict, error: str) -> None:
        """Mark a job failed without further attempts."""
        await self.repo.mark_failed(job["id"], error, self._clock())

    async def purge_finished(self, older_than: float | None = None) -> int:
        """Delete done and failed jobs settled more than ``older_than`` seconds ago."""
        retention = older_than if older_than is not None else config.JOB_RETENTION_SECONDS
        purged = await self.repo.purge_finished(self._clock() - max(0.0, retention))
        if purged:
            logger.info("Purged %s finished jobs older than %ss", purged, retention)
        return purged

    async def stats(self) -> dict[str, int]:
        counts = await self.repo.counts_by_status()
        return {
            "pending": counts.get("pending", 0),
            "running": counts.get("running", 0),
            "done": counts.get("done", 0),
            "failed": counts.get("failed", 0),
        }

    async def list_recent(self, limit: int = 50, status: str | None = None) -> list[dict]:
        return await self.repo.list_recent(limit, status)

    async def wait(self, timeout: float) -> None:
        """Sleep until something is enqueued or ``timeout`` elapses."""
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        self._wake.clear()
