from contextlib import asynccontextmanager

from psycopg_pool import AsyncConnectionPool

from whale_tracker.core.config import DATABASE_URL
from whale_tracker.core.logger import get_logger

logger = get_logger("whale_tracker.db")

# Global pool instance
pool: AsyncConnectionPool = None


async def init_db(conninfo: str = None):
    global pool
    logger.info("Initializing async connection pool...")
    pool = AsyncConnectionPool(
        conninfo=conninfo or DATABASE_URL,
        min_size=1,
        max_size=10,
        timeout=10,
        open=False
    )
    await pool.open()
    logger.info("Async pool initialized.")


async def close_db():
    global pool
    if pool:
        logger.info("Closing async pool...")
        await pool.close()
        pool = None
        logger.info("Async pool closed.")


@asynccontextmanager
async def get_db_connection():
    if not pool:
        raise RuntimeError("Database pool not initialized")
    async with pool.connection() as conn:
        yield conn


async def check_tables(connection_factory=get_db_connection) -> bool:
    """True when both tracker tables exist."""
    async with connection_factory() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT to_regclass('public.positions'), to_regclass('public.processed_signatures')"
            )
            row = await cur.fetchone()
    return bool(row and row[0] and row[1])
