"""Sleepfeed FastAPI backend, main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sleepfeed import config
from sleepfeed.routers.feed import feed_router
from sleepfeed.routers.jobs import jobs_router
from sleepfeed.routers.sleep_records import sleep_records_router
from sleepfeed.routers.users import users_router

from sleepfeed.db import connection, migrations
from sleepfeed.services.container import build_services
from sleepfeed.observability import initialize as initialize_observability, shutdown as shutdown_observability

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("sleepfeed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Sleepfeed backend starting up")
    initialize_observability(app)

    # 1. Initialize DB connection
    db = await connection.get_connection()

    # 2. Run migrations
    await migrations.run_migrations(db)

    # 3. Wire services, drop expired cache rows and settled jobs past retention
    services = build_services(db)
    app.state.services = services
    purged = await services.cache.purge_expired()
    if purged:
        logger.info("Purged %s expired cache entries", purged)
    await services.queue.purge_finished()

    # 4. Background job worker
    if config.JOB_WORKER_ENABLED:
        await services.worker.start()
    else:
        logger.info("Job worker disabled (SLEEPFEED_JOB_WORKER_ENABLED=false)")

    yield

    logger.info("Sleepfeed backend shutting down")
    await services.worker.stop()
    shutdown_observability(app)
    await connection.close_connection()


app = FastAPI(
    title="Sleepfeed API",
    description="Sleep session tracking with a weekly following feed",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(users_router)
app.include_router(sleep_records_router)
app.include_router(feed_router)
app.include_router(jobs_router)


@app.get("/api/health")
async def health():
    services = getattr(app.state, "services", None)
    db = connection.describe()
    return {
        "status": "ok",
        "db": db["connected"],
        "dbBackend": db["backend"],
        "dbTarget": db["target"],
        "cacheBackend": config.CACHE_BACKEND,
        "workerRunning": bool(services and services.worker.is_running),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("sleepfeed.main:app", host=config.HOST, port=config.PORT, reload=True)
