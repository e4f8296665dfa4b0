"""Typed cache keys.

Every derived value lives under ``<entity_kind>:<entity_id>:<purpose>[:<qualifier>]``.
Call sites build keys through the helpers below so invalidation can target a
single purpose or everything cached for an entity.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date


OPEN_SESSION = "open_session"
WEEKLY_BUCKET = "weekly_sleep"
FOLLOWING_IDS = "following_ids"
FOLLOWERS_COUNT = "followers_count"
FEED = "feed"


@dataclass(frozen=True)
class CacheKey:
    entity_kind: str
    entity_id: int | str
    purpose: str
    qualifier: str = ""

    def render(self) -> str:
        base = f"{self.entity_kind}:{self.entity_id}:{self.purpose}"
        return f"{base}:{self.qualifier}" if self.qualifier else base

    def __str__(self) -> str:
        return self.render()


def user_prefix(user_id: int) -> str:
    """Prefix matching every key cached for one user."""
    return f"user:{user_id}:"


def open_session_key(user_id: int) -> CacheKey:
    return CacheKey("user", user_id, OPEN_SESSION)


def weekly_bucket_key(user_id: int, week: date) -> CacheKey:
    return CacheKey("user", user_id, WEEKLY_BUCKET, week.isoformat())


def following_ids_key(user_id: int) -> CacheKey:
    return CacheKey("user", user_id, FOLLOWING_IDS)


def followers_count_key(user_id: int) -> CacheKey:
    return CacheKey("user", user_id, FOLLOWERS_COUNT)


def feed_key(user_id: int, week: date) -> CacheKey:
    return CacheKey("user", user_id, FEED, week.isoformat())


def feed_prefix(user_id: int) -> str:
    """Prefix matching every cached feed week of one user."""
    return f"{CacheKey('user', user_id, FEED).render()}:"
