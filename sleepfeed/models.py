"""Pydantic models for the API boundary."""
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional, Generic, TypeVar, Any

T = TypeVar("T")

class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    offset: int
    limit: int
# ── User-related models ─────────────────────────────────────────────

class User(BaseModel):
    id: int
    name: str
    created_at: str = ""


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class UserSummary(BaseModel):
    id: int
    name: str
    sleep_records_count: int = 0
    following_count: int = 0
    followers_count: int = 0


# ── Sleep session models ────────────────────────────────────────────

class SleepSession(BaseModel):
    id: int
    user_id: int
    clock_in_time: str
    clock_out_time: Optional[str] = None
    duration: int = 0
    created_at: str = ""

    @property
    def completed(self) -> bool:
        return bool(self.clock_out_time)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SleepSession":
        return cls(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            clock_in_time=str(row["clock_in_time"]),
            clock_out_time=row.get("clock_out_time") or None,
            duration=int(row.get("duration") or 0),
            created_at=str(row.get("created_at") or ""),
        )


class ClockResponse(BaseModel):
    message: str
    sleep_record: SleepSession


# ── Weekly aggregation / feed models ────────────────────────────────

class WeeklyEntry(BaseModel):
    """One completed session inside a per-user weekly bucket."""
    id: int
    clock_in_time: str
    clock_out_time: str
    duration: int
    created_at: str = ""


class FeedUser(BaseModel):
    id: int
    name: str


class FeedEntry(WeeklyEntry):
    user: FeedUser


class FeedResponse(BaseModel):
    week_start: str
    total: int
    items: list[FeedEntry] = Field(default_factory=list)


# ── Job queue models ────────────────────────────────────────────────

class JobInfo(BaseModel):
    id: int
    kind: str
    status: str
    attempts: int = 0
    max_attempts: int = 0
    last_error: str = ""
    created_at: str = ""
    updated_at: str = ""
    finished_at: Optional[float] = None
