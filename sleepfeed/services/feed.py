"""Merged weekly feed of followed users' completed sessions."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable

from sleepfeed import config, observability
from sleepfeed.cache.keys import feed_key
from sleepfeed.cache.store import CacheStore
from sleepfeed.date_utils import previous_week_start, utcnow

logger = logging.getLogger("sleepfeed.feed")


def _batches(ids: list[int], size: int):
    size = max(1, size)
    for offset in range(0, len(ids), size):
        yield ids[offset:offset + size]


class FeedAssembler:
    """Reads weekly buckets only. Users whose aggregation has not run yet are absent."""

    def __init__(
        self,
        graph,
        users,
        aggregator,
        cache: CacheStore,
        batch_size: int | None = None,
        feed_ttl: int | None = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.graph = graph
        self.users = users
        self.aggregator = aggregator
        self.cache = cache
        self.batch_size = batch_size if batch_size is not None else config.FEED_BATCH_SIZE
        self.feed_ttl = feed_ttl if feed_ttl is not None else config.FEED_CACHE_TTL_SECONDS
        self._now = now

    def default_week(self) -> date:
        return previous_week_start(self._now())

    async def assemble(self, user_id: int, week: date | None = None) -> dict[str, Any]:
        target = week or self.default_week()
        key = feed_key(user_id, target)
        if self.feed_ttl > 0:
            cached = await self.cache.get(key)
            if isinstance(cached, dict):
                return cached

        with observability.start_span("feed.assemble", {"user.id": user_id, "feed.week": target.isoformat()}):
            entries = await self._collect(user_id, target)

        # stable: ties keep followed-user order, then bucket order
        entries.sort(key=lambda entry: -int(entry.get("duration") or 0))
        feed = {"week_start": target.isoformat(), "total": len(entries), "items": entries}

        if self.feed_ttl > 0:
            await self.cache.set(key, feed, self.feed_ttl)
        observability.record_feed_size(len(entries))
        logger.debug("Feed for user %s week %s: %s entries", user_id, target, len(entries))
        return feed

    async def _collect(self, user_id: int, week: date) -> list[dict]:
        followed = await self.graph.following_ids(user_id)
        entries: list[dict] = []
        for batch in _batches(followed, self.batch_size):
            names = {int(u["id"]): u["name"] for u in await self.users.get_many(batch)}
            for followed_id in batch:
                if followed_id not in names:
                    continue
                tag = {"id": followed_id, "name": names[followed_id]}
                for entry in await self.aggregator.read(followed_id, week):
                    entries.append({**entry, "user": dict(tag)})
        return entries
