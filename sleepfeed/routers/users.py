"""User listing, lookup and follow endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Header, HTTPException, Query, Request

from sleepfeed.models import PaginatedResponse, User, UserCreate, UserSummary
from sleepfeed.routers.deps import _get_services, acting_user

logger = logging.getLogger("sleepfeed.users")

users_router = APIRouter(prefix="/api/users", tags=["users"])


async def _summary(services, user: dict) -> UserSummary:
    user_id = int(user["id"])
    return UserSummary(
        id=user_id,
        name=user["name"],
        sleep_records_count=await services.sessions.count_by_user(user_id),
        following_count=await services.graph.following_count(user_id),
        followers_count=await services.graph.followers_count(user_id),
    )


async def _target_user(services, user_id: int) -> dict:
    user = await services.users.get_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    return user


@users_router.get("", response_model=PaginatedResponse[User])
async def list_users(
    request: Request,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    services = _get_services(request)
    rows = await services.users.list_paginated(offset, limit)
    total = await services.users.count()
    return PaginatedResponse(
        items=[User(id=r["id"], name=r["name"], created_at=r.get("created_at") or "") for r in rows],
        total=total,
        offset=offset,
        limit=limit,
    )


@users_router.post("", response_model=User, status_code=201)
async def create_user(req: UserCreate, request: Request):
    services = _get_services(request)
    name = req.name.strip()
    if not name:
        raise HTTPException(status_code=422, detail="name must not be blank")
    row = await services.users.create(name)
    logger.info("Created user %s", row["id"])
    return User(id=row["id"], name=row["name"], created_at=row["created_at"])


@users_router.get("/{user_id}", response_model=UserSummary)
async def get_user(user_id: int, request: Request):
    services = _get_services(request)
    return await _summary(services, await _target_user(services, user_id))


@users_router.delete("/{user_id}")
async def delete_user(user_id: int, request: Request):
    """Delete a user with its sessions and edges, then drop the caches they fed."""
    services = _get_services(request)
    await _target_user(services, user_id)
    following = await services.follows.list_following_ids(user_id)
    followers = await services.follows.list_follower_ids(user_id)
    deleted = await services.users.delete(user_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    await services.graph.forget_user(user_id, following, followers)
    logger.info("Deleted user %s", user_id)
    return {"deleted": True, "id": user_id}


@users_router.post("/{user_id}/follow", response_model=UserSummary)
async def follow_user(
    user_id: int,
    request: Request,
    x_user_id: str | None = Header(None),
):
    services = _get_services(request)
    me = await acting_user(services, x_user_id)
    await _target_user(services, user_id)
    if not await services.graph.follow(int(me["id"]), user_id):
        raise HTTPException(status_code=422, detail="Unable to follow user")
    return await _summary(services, me)


@users_router.delete("/{user_id}/follow", response_model=UserSummary)
async def unfollow_user(
    user_id: int,
    request: Request,
    x_user_id: str | None = Header(None),
):
    services = _get_services(request)
    me = await acting_user(services, x_user_id)
    await _target_user(services, user_id)
    if not await services.graph.unfollow(int(me["id"]), user_id):
        raise HTTPException(status_code=422, detail="Unable to unfollow user")
    return await _summary(services, me)
