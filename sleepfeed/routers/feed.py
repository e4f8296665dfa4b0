"""Following feed endpoint."""
from __future__ import annotations

from fastapi import APIRouter, Header, HTTPException, Query, Request

from sleepfeed.date_utils import parse_week
from sleepfeed.models import FeedResponse
from sleepfeed.routers.deps import _get_services, acting_user

feed_router = APIRouter(prefix="/api/feed", tags=["feed"])


@feed_router.get("", response_model=FeedResponse)
async def get_feed(
    request: Request,
    x_user_id: str | None = Header(None),
    week: str | None = Query(None, description="Any date in the target week (YYYY-MM-DD); defaults to last week"),
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    services = _get_services(request)
    me = await acting_user(services, x_user_id)

    target = None
    if week:
        try:
            target = parse_week(week)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Invalid week: {week}")

    feed = await services.feed.assemble(int(me["id"]), target)
    return FeedResponse(
        week_start=feed["week_start"],
        total=feed["total"],
        items=feed["items"][offset:offset + limit],
    )
