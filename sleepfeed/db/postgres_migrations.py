"""PostgreSQL schema creation and versioning."""
from __future__ import annotations

import logging

import asyncpg

logger = logging.getLogger("sleepfeed.db")

SCHEMA_VERSION = 2

_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS users (
    id         BIGSERIAL PRIMARY KEY,
    name       TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sleep_sessions (
    id             BIGSERIAL PRIMARY KEY,
    user_id        BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    clock_in_time  TEXT NOT NULL,
    clock_out_time TEXT,
    duration       INTEGER NOT NULL DEFAULT 0,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,
    CONSTRAINT sleep_sessions_clock_order CHECK (clock_out_time IS NULL OR clock_out_time > clock_in_time)
);

CREATE INDEX IF NOT EXISTS idx_sleep_sessions_user ON sleep_sessions(user_id, id DESC);
CREATE INDEX IF NOT EXISTS idx_sleep_sessions_clock_in ON sleep_sessions(clock_in_time);
CREATE INDEX IF NOT EXISTS idx_sleep_sessions_duration ON sleep_sessions(duration);
CREATE UNIQUE INDEX IF NOT EXISTS idx_sleep_sessions_one_open
    ON sleep_sessions(user_id) WHERE clock_out_time IS NULL;

CREATE TABLE IF NOT EXISTS follows (
    id          BIGSERIAL PRIMARY KEY,
    follower_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    followed_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at  TEXT NOT NULL,
    CONSTRAINT follows_not_self CHECK (follower_id <> followed_id)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_follows_pair ON follows(follower_id, followed_id);
CREATE INDEX IF NOT EXISTS idx_follows_followed ON follows(followed_id);

CREATE TABLE IF NOT EXISTS cache_entries (
    key        TEXT PRIMARY KEY,
    value_json TEXT NOT NULL,
    expires_at DOUBLE PRECISION,
    version    BIGINT NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_cache_entries_expiry ON cache_entries(expires_at);

CREATE TABLE IF NOT EXISTS jobs (
    id           BIGSERIAL PRIMARY KEY,
    kind         TEXT NOT NULL,
    payload_json TEXT NOT NULL DEFAULT '{}',
    status       TEXT NOT NULL DEFAULT 'pending',
    attempts     INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL DEFAULT 5,
    run_after    DOUBLE PRECISION NOT NULL DEFAULT 0,
    locked_at    DOUBLE PRECISION,
    finished_at  DOUBLE PRECISION,
    last_error   TEXT DEFAULT '',
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_jobs_claim ON jobs(status, run_after, id);
"""

# v1 databases predate these columns
_UPGRADES = """
ALTER TABLE cache_entries ADD COLUMN IF NOT EXISTS version BIGINT NOT NULL DEFAULT 0;
ALTER TABLE jobs ADD COLUMN IF NOT EXISTS finished_at DOUBLE PRECISION;
CREATE INDEX IF NOT EXISTS idx_jobs_finished ON jobs(status, finished_at);
"""


async def run_migrations(db: asyncpg.Pool) -> None:
    """Create all tables. Idempotent."""
    async with db.acquire() as conn:
        async with conn.transaction():
            await conn.execute(_TABLES)
            await conn.execute(_UPGRADES)
            current_version = await conn.fetchval("SELECT MAX(version) FROM schema_version") or 0
            if current_version >= SCHEMA_VERSION:
                logger.info(f"Schema is up to date (version {current_version})")
                return
            await conn.execute("INSERT INTO schema_version (version) VALUES ($1)", SCHEMA_VERSION)
    logger.info(f"Migrations complete (schema version {SCHEMA_VERSION})")
