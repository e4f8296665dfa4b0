"""Weekly per-user buckets of completed sessions, ranked by duration."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sleepfeed import config
from sleepfeed.cache.keys import weekly_bucket_key
from sleepfeed.cache.store import CacheStore
from sleepfeed.date_utils import parse_iso, week_start
from sleepfeed.errors import ValidationError

logger = logging.getLogger("sleepfeed.aggregation")

JOB_KIND = "weekly_sleep_aggregation"

_ENTRY_FIELDS = ("id", "clock_in_time", "clock_out_time", "duration", "created_at")


def snapshot(session: dict[str, Any]) -> dict[str, Any]:
    """The part of a closed session stored in a weekly bucket."""
    return {
        "id": int(session["id"]),
        "clock_in_time": str(session["clock_in_time"]),
        "clock_out_time": str(session["clock_out_time"]),
        "duration": int(session.get("duration") or 0),
        "created_at": str(session.get("created_at") or ""),
    }


def merge_entry(bucket: list[dict], entry: dict) -> list[dict]:
    """Upsert ``entry`` by id and re-rank by duration, longest first.

    ``sorted`` is stable, so equal durations keep their insertion order.
    """
    merged = [item for item in bucket if int(item.get("id", -1)) != entry["id"]]
    merged.append(entry)
    return sorted(merged, key=lambda item: -int(item.get("duration") or 0))


class WeeklyAggregator:
    job_kind = JOB_KIND

    def __init__(self, cache: CacheStore, queue=None, ttl: int | None = None):
        self.cache = cache
        self.queue = queue
        self.ttl = ttl if ttl is not None else config.WEEKLY_BUCKET_TTL_SECONDS

    def build_payload(self, user_id: int, session: dict[str, Any]) -> dict[str, Any]:
        entry = snapshot(session)
        clock_in = parse_iso(entry["clock_in_time"])
        return {
            "user_id": int(user_id),
            "session": entry,
            "week_key": week_start(clock_in).isoformat() if clock_in else "",
        }

    async def enqueue(self, user_id: int, session: dict[str, Any]) -> int:
        if self.queue is None:
            raise RuntimeError("WeeklyAggregator has no job queue")
        return await self.queue.enqueue(JOB_KIND, self.build_payload(user_id, session))

    async def handle(self, payload: dict[str, Any]) -> None:
        """Fold one completed session into its weekly bucket.

        Safe to run more than once for the same payload.
        """
        try:
            user_id = int(payload["user_id"])
            entry = snapshot(payload["session"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"malformed aggregation payload: {exc}") from exc

        clock_in = parse_iso(entry["clock_in_time"])
        if clock_in is None:
            raise ValidationError("aggregation payload has no clock_in_time")
        week = week_start(clock_in)
        key = weekly_bucket_key(user_id, week)

        # compare-and-set: a concurrent writer forces a re-read, never a lost entry
        merged = await self.cache.update(
            key,
            lambda bucket: merge_entry(bucket if isinstance(bucket, list) else [], entry),
            self.ttl,
        )

        logger.info(
            "Weekly bucket %s now holds %s sessions (upserted %s)",
            key.render(), len(merged), entry["id"],
        )

    async def read(self, user_id: int, week: date) -> list[dict]:
        bucket = await self.cache.get(weekly_bucket_key(user_id, week))
        if not isinstance(bucket, list):
            return []
        return [{field: item.get(field) for field in _ENTRY_FIELDS} for item in bucket]
