"""Background job queue observability."""
from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Query, Request

from sleepfeed.models import JobInfo
from sleepfeed.routers.deps import _get_services

jobs_router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@jobs_router.get("/status")
async def get_jobs_status(request: Request):
    services = _get_services(request)
    return {
        "workerRunning": services.worker.is_running,
        "counts": await services.queue.stats(),
    }


@jobs_router.get("", response_model=list[JobInfo])
async def list_jobs(
    request: Request,
    status: Literal["pending", "running", "done", "failed"] | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
):
    services = _get_services(request)
    rows = await services.queue.list_recent(limit, status)
    return [
        JobInfo(
            id=r["id"],
            kind=r["kind"],
            status=r["status"],
            attempts=r.get("attempts") or 0,
            max_attempts=r.get("max_attempts") or 0,
            last_error=r.get("last_error") or "",
            created_at=r.get("created_at") or "",
            updated_at=r.get("updated_at") or "",
            finished_at=r.get("finished_at"),
        )
        for r in rows
    ]
