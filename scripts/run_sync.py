"""
Script to run sync consumers once.

    python scripts/run_sync.py                      # every configured consumer
    python scripts/run_sync.py mirror_substances    # a single consumer
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker, engine
from core.logging import setup_logging
from sync.consumer import build_consumer_runner

logger = logging.getLogger(__name__)


async def run_sync(consumer_names) -> bool:
    """Returns True when every consumer run succeeded"""
    all_ok = True

    try:
        for consumer_name in consumer_names:
            async with async_session_maker() as session:
                try:
                    runner = build_consumer_runner(session, consumer_name)
                except KeyError:
                    logger.error(f"Unknown sync consumer: {consumer_name}")
                    all_ok = False
                    continue

                result = await runner.run()

            logger.info(
                f"{consumer_name}: {result.status} - fetched={result.records_fetched} "
                f"applied={result.records_processed} skipped={result.records_skipped} "
                f"failed={result.records_failed} cursor={result.cursor_after}"
            )
            if result.status != "success" or result.records_failed:
                all_ok = False
    finally:
        await engine.dispose()

    return all_ok


if __name__ == "__main__":
    setup_logging()
    names = sys.argv[1:] or list(settings.SYNC_CONSUMERS)
    ok = asyncio.run(run_sync(names))
    sys.exit(0 if ok else 1)
