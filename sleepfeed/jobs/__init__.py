"""Background job queue and worker."""

from sleepfeed.jobs.queue import JobQueue
from sleepfeed.jobs.worker import JobWorker

__all__ = ["JobQueue", "JobWorker"]
