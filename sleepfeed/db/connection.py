"""Process-wide database handle.

SQLite (default) is a single shared aiosqlite connection: every repository,
the job worker and the cache backend write through it, so a statement that
fails must never roll back the connection's open work. PostgreSQL is an
asyncpg pool. ``SLEEPFEED_DB_BACKEND`` picks one.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Union
from urllib.parse import urlsplit

import aiosqlite
import asyncpg

from sleepfeed import config

logger = logging.getLogger("sleepfeed.db")

DbConnection = Union[aiosqlite.Connection, asyncpg.Pool]

_connection: DbConnection | None = None


async def open_sqlite(path: Path | str, busy_timeout_ms: int | None = None) -> aiosqlite.Connection:
    """Open and configure one SQLite connection for repository use."""
    target = str(path)
    if target != ":memory:":
        Path(target).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(target)
    conn.row_factory = aiosqlite.Row
    if target != ":memory:":
        # readers (health, feed) keep going while the worker writes
        await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA foreign_keys=ON")
    timeout = config.SQLITE_BUSY_TIMEOUT_MS if busy_timeout_ms is None else busy_timeout_ms
    await conn.execute(f"PRAGMA busy_timeout={int(timeout)}")
    return conn


async def open_pool(url: str) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        url,
        min_size=config.PG_POOL_MIN_SIZE,
        max_size=config.PG_POOL_MAX_SIZE,
    )


def _redacted(url: str) -> str:
    parts = urlsplit(url)
    host = parts.hostname or "localhost"
    port = f":{parts.port}" if parts.port else ""
    return f"{parts.scheme}://{host}{port}{parts.path}"


async def get_connection() -> DbConnection:
    """Return the shared connection/pool, opening it on first use."""
    global _connection
    if _connection is not None:
        return _connection

    if config.DB_BACKEND == "postgres":
        _connection = await open_pool(config.DATABASE_URL)
        logger.info("PostgreSQL pool ready: %s", _redacted(config.DATABASE_URL))
    else:
        _connection = await open_sqlite(config.DB_PATH)
        logger.info("SQLite database ready: %s", config.DB_PATH)
    return _connection


def is_connected() -> bool:
    return _connection is not None


def describe() -> dict[str, Any]:
    """Backend, target and state for the health endpoint. Never includes credentials."""
    if config.DB_BACKEND == "postgres":
        target = _redacted(config.DATABASE_URL)
    else:
        target = str(config.DB_PATH)
    return {"backend": config.DB_BACKEND, "target": target, "connected": is_connected()}


async def close_connection() -> None:
    global _connection
    if _connection is None:
        return
    await _connection.close()
    _connection = None
    logger.info("Database connection closed")
