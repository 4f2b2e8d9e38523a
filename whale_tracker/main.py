"""
Whale Tracker API
=================
Read-only view over tracked positions. The poll worker runs separately
(`python -m whale_tracker.workers.poll_worker`).
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from whale_tracker.api.routers import positions
from whale_tracker.core.db import close_db, get_db_connection, init_db
from whale_tracker.core.logger import get_logger

logger = get_logger("whale_tracker.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("Application startup complete.")
    yield
    await close_db()
    logger.info("Application shutdown complete.")


app = FastAPI(title="Solana Whale Tracker", version="1.0.0", lifespan=lifespan)

app.include_router(positions.router)


@app.get("/health")
async def health():
    health_status = {"status": "ok", "database": "disconnected"}
    try:
        async with get_db_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
            health_status["database"] = "connected"
    except Exception as e:
        logger.error(f"Health check DB failed: {e}")
        health_status["status"] = "error"
        health_status["error"] = str(e)

    return health_status
