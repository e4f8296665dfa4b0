"""Wires repositories, cache, queue and services for one database handle."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from sleepfeed import config
from sleepfeed.cache.backends import build_backend
from sleepfeed.cache.store import CacheStore
from sleepfeed.date_utils import utcnow
from sleepfeed.db.factory import (
    get_follow_repository,
    get_job_repository,
    get_sleep_session_repository,
    get_user_repository,
)
from sleepfeed.jobs.queue import JobQueue
from sleepfeed.jobs.worker import JobWorker
from sleepfeed.services.aggregation import JOB_KIND, WeeklyAggregator
from sleepfeed.services.clock import SleepClock
from sleepfeed.services.feed import FeedAssembler
from sleepfeed.services.following import FollowingGraph
from sleepfeed.services.session_cache import SessionCache


@dataclass
class Services:
    users: Any
    sessions: Any
    follows: Any
    cache: CacheStore
    queue: JobQueue
    worker: JobWorker
    session_cache: SessionCache
    clock: SleepClock
    aggregator: WeeklyAggregator
    graph: FollowingGraph
    feed: FeedAssembler


def build_services(
    db: Any,
    cache_backend: Any = None,
    now: Callable[[], datetime] = utcnow,
) -> Services:
    users = get_user_repository(db)
    sessions = get_sleep_session_repository(db)
    follows = get_follow_repository(db)
    cache = CacheStore(cache_backend or build_backend(config.CACHE_BACKEND, db))

    queue = JobQueue(get_job_repository(db))
    worker = JobWorker(queue)
    aggregator = WeeklyAggregator(cache, queue)
    worker.register(JOB_KIND, aggregator.handle)

    session_cache = SessionCache(cache, sessions)
    graph = FollowingGraph(follows, cache)
    return Services(
        users=users,
        sessions=sessions,
        follows=follows,
        cache=cache,
        queue=queue,
        worker=worker,
        session_cache=session_cache,
        clock=SleepClock(sessions, session_cache, aggregator, now=now),
        aggregator=aggregator,
        graph=graph,
        feed=FeedAssembler(graph, users, aggregator, cache, now=now),
    )
