"""
Quick check of database connectivity and row counts

Run: python scripts/check_db.py
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables
load_dotenv()

import logging
from sqlalchemy import func, select

from convo_mcp.db.database import Database
from convo_mcp.models import Consent, Conversation, ConversationState, Message, User

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


async def check_connection():
    """Ping the database and print table statistics"""
    print("=" * 60)
    print("  Database Connection Check")
    print("=" * 60 + "\n")

    database = Database()
    try:
        await database.connect(max_retries=1)
        logger.info("✅ Connection successful!\n")

        healthy = await database.check_health()
        logger.info(f"🩺 Health: {'ok' if healthy else 'failing'}")

        async with database.session() as session:
            logger.info("📊 Statistics:")
            for model in (User, Conversation, ConversationState, Consent, Message):
                count = await session.scalar(select(func.count()).select_from(model))
                logger.info(f"   {model.__tablename__}: {count}")

    except Exception as e:
        logger.error(f"❌ Check failed: {e}")
        raise
    finally:
        await database.close()

    print("\n" + "=" * 60)


if __name__ == "__main__":
    asyncio.run(check_connection())
