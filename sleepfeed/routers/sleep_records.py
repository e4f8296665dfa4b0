"""Sleep record endpoints: listing plus clock in / clock out."""
from __future__ import annotations

from fastapi import APIRouter, Header, Query, Request

from sleepfeed.errors import SleepFeedError
from sleepfeed.models import ClockResponse, PaginatedResponse, SleepSession
from sleepfeed.routers.deps import _get_services, acting_user, http_error

sleep_records_router = APIRouter(prefix="/api/sleep_records", tags=["sleep_records"])


@sleep_records_router.get("", response_model=PaginatedResponse[SleepSession])
async def list_sleep_records(
    request: Request,
    x_user_id: str | None = Header(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    completed_only: bool = Query(False, description="Only return closed sessions"),
):
    services = _get_services(request)
    me = await acting_user(services, x_user_id)
    user_id = int(me["id"])
    rows = await services.sessions.list_by_user(user_id, offset, limit, completed_only)
    total = await services.sessions.count_by_user(user_id, completed_only)
    return PaginatedResponse(
        items=[SleepSession.from_row(r) for r in rows],
        total=total,
        offset=offset,
        limit=limit,
    )


@sleep_records_router.post("/clock_in", response_model=ClockResponse, status_code=201)
async def clock_in(request: Request, x_user_id: str | None = Header(None)):
    services = _get_services(request)
    me = await acting_user(services, x_user_id)
    try:
        session = await services.clock.clock_in(int(me["id"]))
    except SleepFeedError as exc:
        raise http_error(exc)
    return ClockResponse(message="Clocked in", sleep_record=session)


@sleep_records_router.patch("/clock_out", response_model=ClockResponse)
async def clock_out(request: Request, x_user_id: str | None = Header(None)):
    services = _get_services(request)
    me = await acting_user(services, x_user_id)
    try:
        session = await services.clock.clock_out(int(me["id"]))
    except SleepFeedError as exc:
        raise http_error(exc)
    return ClockResponse(message="Clocked out", sleep_record=session)
