"""Repository factory to abstract DB backend (SQLite vs Postgres)."""
from __future__ import annotations

from typing import Any
import aiosqlite

from sleepfeed.db.repositories.users import SqliteUserRepository
from sleepfeed.db.repositories.sleep_sessions import SqliteSleepSessionRepository
from sleepfeed.db.repositories.follows import SqliteFollowRepository
from sleepfeed.db.repositories.cache_entries import SqliteCacheEntryRepository
from sleepfeed.db.repositories.jobs import SqliteJobRepository

def get_user_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteUserRepository(db)
    from sleepfeed.db.repositories.postgres.users import PostgresUserRepository
    return PostgresUserRepository(db)

def get_sleep_session_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteSleepSessionRepository(db)
    from sleepfeed.db.repositories.postgres.sleep_sessions import PostgresSleepSessionRepository
    return PostgresSleepSessionRepository(db)

def get_follow_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteFollowRepository(db)
    from sleepfeed.db.repositories.postgres.follows import PostgresFollowRepository
    return PostgresFollowRepository(db)

def get_cache_entry_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteCacheEntryRepository(db)
    from sleepfeed.db.repositories.postgres.cache_entries import PostgresCacheEntryRepository
    return PostgresCacheEntryRepository(db)

def get_job_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteJobRepository(db)
    from sleepfeed.db.repositories.postgres.jobs import PostgresJobRepository
    return PostgresJobRepository(db)
