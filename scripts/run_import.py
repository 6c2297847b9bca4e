"""
Script to import catalogue pages through the enrichment pipeline.

Each page is one bounded batch; the script walks pages until the catalogue
runs dry or --pages is reached.

    python scripts/run_import.py --pages 4 --page-size 50 --skip-ai
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker, engine
from core.exceptions import CatalogueException
from core.logging import setup_logging
from ingestion.connectors.generative import GenerativeEnricher
from ingestion.connectors.providers import build_generative_provider
from ingestion.connectors.pubchem import PubChemConnector
from ingestion.connectors.wikidata import WikidataCatalogue
from ingestion.runner import EnrichmentRunner

logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(description="Import Wikidata catalogue pages")
    parser.add_argument("--pages", type=int, default=1, help="Number of pages to import")
    parser.add_argument("--page-size", type=int, default=settings.IMPORT_BATCH_LIMIT)
    parser.add_argument("--offset", type=int, default=0)
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--skip-ai", action="store_true")
    parser.add_argument("--skip-pubchem", action="store_true")
    return parser.parse_args()


async def run_import(args) -> int:
    """Returns the number of failed items across all pages"""
    catalogue = WikidataCatalogue()
    generative = GenerativeEnricher(build_generative_provider(settings))
    chemical = PubChemConnector()
    total_failed = 0

    try:
        for page in range(args.pages):
            offset = args.offset + page * args.page_size

            async with async_session_maker() as session:
                runner = EnrichmentRunner(session, chemical, generative)
                response = await runner.run_from_catalogue(
                    catalogue,
                    limit=args.page_size,
                    offset=offset,
                    dry_run=args.dry_run,
                    skip_ai=args.skip_ai,
                    skip_pubchem=args.skip_pubchem,
                    admin_user="cli"
                )

            summary = response.summary
            total_failed += summary.failed
            logger.info(
                f"Page {page + 1} (offset {offset}): total={summary.total} inserted={summary.inserted} "
                f"updated={summary.updated} skipped={summary.skipped} failed={summary.failed} "
                f"avg_confidence={summary.avg_confidence}"
            )

            if summary.total < args.page_size:
                logger.info("Catalogue exhausted")
                break

    except CatalogueException as e:
        logger.error(f"Import aborted: {e}")
        raise
    finally:
        await engine.dispose()

    return total_failed


if __name__ == "__main__":
    setup_logging()
    failed = asyncio.run(run_import(parse_args()))
    sys.exit(1 if failed else 0)
