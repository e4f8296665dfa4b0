"""Request-scoped lookups shared by the routers."""
from __future__ import annotations

from fastapi import HTTPException, Request

from sleepfeed.errors import SleepFeedError


def _get_services(request: Request):
    services = getattr(request.app.state, "services", None)
    if not services:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


def http_error(exc: SleepFeedError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


async def acting_user(services, x_user_id: str | None) -> dict:
    """Resolve the ``X-User-ID`` header to a stored user row."""
    raw = (x_user_id or "").strip()
    if not raw:
        raise HTTPException(status_code=401, detail="X-User-ID header required")
    try:
        user_id = int(raw)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid X-User-ID: {raw}")
    user = await services.users.get_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    return user
