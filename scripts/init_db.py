"""
Database initialization script

Creates every table, unique constraint and index against DATABASE_URL.
Safe to run more than once:
    python scripts/init_db.py
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables before settings are read
load_dotenv()

import logging
from sqlalchemy import inspect
from sqlalchemy.engine import make_url

from convo_mcp.db.database import Database

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


async def init_db():
    """Create the schema and list what exists afterwards"""
    database = Database()
    logger.info(f"🔌 Connecting to {make_url(database.url).render_as_string(hide_password=True)}...")
    await database.connect()

    try:
        await database.create_schema()
        logger.info("✅ Schema created\n")

        async with database.engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
            for table in tables:
                indexes = await conn.run_sync(lambda sync_conn, t=table: inspect(sync_conn).get_indexes(t))
                logger.info(f"  📋 {table}")
                for index in indexes:
                    logger.info(f"    ✅ {index['name']}")
    finally:
        await database.close()


if __name__ == "__main__":
    asyncio.run(init_db())
