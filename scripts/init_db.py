import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import build_engine, create_all_tables
from core.logging import setup_logging

logger = logging.getLogger(__name__)


async def init_database(database_url: str = None):
    logger.info("Connecting to database...")
    engine = build_engine(database_url or settings.DATABASE_URL)

    try:
        logger.info("Creating tables...")
        await create_all_tables(engine)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database(sys.argv[1] if len(sys.argv) > 1 else None))
