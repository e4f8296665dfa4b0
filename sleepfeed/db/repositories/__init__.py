"""Repository package for database access."""

from .users import SqliteUserRepository
from .sleep_sessions import SqliteSleepSessionRepository
from .follows import SqliteFollowRepository
from .cache_entries import SqliteCacheEntryRepository
from .jobs import SqliteJobRepository

__all__ = [
    "SqliteUserRepository",
    "SqliteSleepSessionRepository",
    "SqliteFollowRepository",
    "SqliteCacheEntryRepository",
    "SqliteJobRepository",
]
