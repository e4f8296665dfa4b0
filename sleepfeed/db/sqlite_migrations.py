"""Database schema creation and versioning.

All CREATE TABLE statements for the SQLite backend.
Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("sleepfeed.db")

SCHEMA_VERSION = 2

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── 1. Users ───────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS users (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    name       TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- ── 2. Sleep sessions ──────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS sleep_sessions (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id        INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    clock_in_time  TEXT NOT NULL,
    clock_out_time TEXT,
    duration       INTEGER NOT NULL DEFAULT 0,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,
    CHECK (clock_out_time IS NULL OR clock_out_time > clock_in_time)
);

CREATE INDEX IF NOT EXISTS idx_sleep_sessions_user ON sleep_sessions(user_id, id DESC);
CREATE INDEX IF NOT EXISTS idx_sleep_sessions_clock_in ON sleep_sessions(clock_in_time);
CREATE INDEX IF NOT EXISTS idx_sleep_sessions_duration ON sleep_sessions(duration);
-- At most one open session per user
CREATE UNIQUE INDEX IF NOT EXISTS idx_sleep_sessions_one_open
    ON sleep_sessions(user_id) WHERE clock_out_time IS NULL;

-- ── 3. Follow edges ────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS follows (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    follower_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    followed_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at  TEXT NOT NULL,
    CHECK (follower_id <> followed_id)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_follows_pair ON follows(follower_id, followed_id);
CREATE INDEX IF NOT EXISTS idx_follows_followed ON follows(followed_id);

-- ── 4. Cache entries (derived, TTL-bound) ──────────────────────────
CREATE TABLE IF NOT EXISTS cache_entries (
    key        TEXT PRIMARY KEY,
    value_json TEXT NOT NULL,
    expires_at REAL,
    version    INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_cache_entries_expiry ON cache_entries(expires_at);

-- ── 5. Background jobs ─────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS jobs (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    kind         TEXT NOT NULL,
    payload_json TEXT NOT NULL DEFAULT '{}',
    status       TEXT NOT NULL DEFAULT 'pending',
    attempts     INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL DEFAULT 5,
    run_after    REAL NOT NULL DEFAULT 0,
    locked_at    REAL,
    finished_at  REAL,
    last_error   TEXT DEFAULT '',
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_jobs_claim ON jobs(status, run_after, id);
"""


async def _column_exists(db: aiosqlite.Connection, table: str, column: str) -> bool:
    async with db.execute(f"PRAGMA table_info({table})") as cur:
        rows = await cur.fetchall()
    return any(row[1] == column for row in rows)


async def _ensure_column(db: aiosqlite.Connection, table: str, column: str, definition: str) -> None:
    if await _column_exists(db, table, column):
        return
    await db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")


async def _upgrade(db: aiosqlite.Connection) -> None:
    # v2: compare-and-set version on cache rows, finish time on jobs
    await _ensure_column(db, "cache_entries", "version", "INTEGER NOT NULL DEFAULT 0")
    await _ensure_column(db, "jobs", "finished_at", "REAL")
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_jobs_finished ON jobs(status, finished_at)"
    )


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables. Idempotent."""
    await db.execute("PRAGMA foreign_keys=ON")

    # Check current schema version
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
            current_version = row[0] if row and row[0] else 0
    except Exception:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info(f"Schema is up to date (version {current_version})")
        return

    logger.info(f"Running migrations: {current_version} → {SCHEMA_VERSION}")

    # Execute all CREATE TABLE statements
    await db.executescript(_TABLES)
    await _upgrade(db)

    # Record schema version
    await db.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info(f"Migrations complete (schema version {SCHEMA_VERSION})")
