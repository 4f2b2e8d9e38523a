import asyncio
import sys
from pathlib import Path

from whale_tracker.core.db import close_db, get_db_connection, init_db

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "whale_tracker" / "storage" / "schema.sql"


async def apply(path: Path = SCHEMA_PATH):
    await init_db()
    try:
        async with get_db_connection() as conn:
            async with conn.cursor() as cur:
                sql = path.read_text()
                print(f"Applying {path.name}...")
                await cur.execute(sql)
                await conn.commit()
                print("Applied.")
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(apply(Path(sys.argv[1]) if len(sys.argv) > 1 else SCHEMA_PATH))
