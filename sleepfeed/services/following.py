"""Follow edges with cached id lists and counters."""
from __future__ import annotations

import logging
from typing import Iterable

from sleepfeed import config
from sleepfeed.cache.keys import (
    feed_prefix,
    followers_count_key,
    following_ids_key,
    user_prefix,
)
from sleepfeed.cache.store import CacheStore

logger = logging.getLogger("sleepfeed.following")

INVALIDATE_BOTH = "both"
INVALIDATE_FOLLOWER = "follower"


class FollowingGraph:
    """Directed follow graph.

    Mutations report failure as ``False`` (self follow, duplicate edge,
    missing edge). Every successful mutation of ``A -> B`` drops A's cached
    following ids and feeds. B's followers counter is dropped as well under
    the ``both`` policy and otherwise expires with its TTL.
    """

    def __init__(
        self,
        follows,
        cache: CacheStore,
        ttl: int | None = None,
        invalidation: str | None = None,
    ):
        self.follows = follows
        self.cache = cache
        self.ttl = ttl if ttl is not None else config.FOLLOWING_CACHE_TTL_SECONDS
        policy = (invalidation or config.FOLLOW_INVALIDATION or INVALIDATE_BOTH).strip().lower()
        if policy not in (INVALIDATE_BOTH, INVALIDATE_FOLLOWER):
            logger.warning("Unknown follow invalidation policy %r, using %r", policy, INVALIDATE_BOTH)
            policy = INVALIDATE_BOTH
        self.invalidation = policy

    async def follow(self, follower_id: int, followed_id: int) -> bool:
        if follower_id == followed_id:
            return False
        if await self.follows.exists(follower_id, followed_id):
            return False
        created = await self.follows.create(follower_id, followed_id)
        if created:
            await self._invalidate(follower_id, followed_id)
            logger.info("User %s now follows %s", follower_id, followed_id)
        return created

    async def unfollow(self, follower_id: int, followed_id: int) -> bool:
        if follower_id == followed_id:
            return False
        destroyed = await self.follows.destroy(follower_id, followed_id)
        if destroyed:
            await self._invalidate(follower_id, followed_id)
            logger.info("User %s unfollowed %s", follower_id, followed_id)
        return destroyed

    async def is_following(self, follower_id: int, followed_id: int) -> bool:
        return await self.follows.exists(follower_id, followed_id)

    async def following_ids(self, user_id: int) -> list[int]:
        ids = await self.cache.fetch(
            following_ids_key(user_id),
            self.ttl,
            lambda: self.follows.list_following_ids(user_id),
        )
        return [int(i) for i in ids]

    async def following_count(self, user_id: int) -> int:
        return len(await self.following_ids(user_id))

    async def followers_count(self, user_id: int) -> int:
        count = await self.cache.fetch(
            followers_count_key(user_id),
            self.ttl,
            lambda: self.follows.count_followers(user_id),
        )
        return int(count)

    async def _invalidate(self, follower_id: int, followed_id: int) -> None:
        await self.cache.delete(following_ids_key(follower_id))
        await self.cache.delete_prefix(feed_prefix(follower_id))
        if self.invalidation == INVALIDATE_BOTH:
            await self.cache.delete(followers_count_key(followed_id))

    async def forget_user(
        self,
        user_id: int,
        following: Iterable[int],
        followers: Iterable[int],
    ) -> None:
        """Drop caches touched by a deleted user's edges."""
        await self.cache.delete_prefix(user_prefix(user_id))
        for follower_id in followers:
            await self.cache.delete(following_ids_key(follower_id))
            await self.cache.delete_prefix(feed_prefix(follower_id))
        for followed_id in following:
            await self.cache.delete(followers_count_key(followed_id))
