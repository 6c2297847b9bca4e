"""
FastAPI dependencies: database sessions, pipeline components, API-key gate
"""

from typing import AsyncGenerator, Optional
from functools import lru_cache
import secrets
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession
from core.config import settings
from core.database import async_session_maker
from core.exceptions import AuthenticationError
from ingestion.bulk import BulkNameImporter
from ingestion.connectors.generative import GenerativeEnricher
from ingestion.connectors.providers import GenerativeProvider, build_generative_provider
from ingestion.connectors.pubchem import PubChemConnector
from ingestion.connectors.wikidata import WikidataCatalogue
from ingestion.jobs import EnrichmentJobWorker
from ingestion.runner import EnrichmentRunner


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session per request"""
    async with async_session_maker() as session:
        yield session


@lru_cache()
def get_generative_provider() -> Optional[GenerativeProvider]:
    """Resolved once per process from configuration"""
    return build_generative_provider(settings)


def get_generative_enricher() -> GenerativeEnricher:
    return GenerativeEnricher(get_generative_provider())


def get_chemical_connector() -> PubChemConnector:
    return PubChemConnector()


def get_catalogue() -> WikidataCatalogue:
    return WikidataCatalogue()


def get_enrichment_runner(
    db: AsyncSession = Depends(get_db),
    chemical: PubChemConnector = Depends(get_chemical_connector),
    generative: GenerativeEnricher = Depends(get_generative_enricher)
) -> EnrichmentRunner:
    return EnrichmentRunner(db, chemical, generative)


def get_bulk_importer(db: AsyncSession = Depends(get_db)) -> BulkNameImporter:
    return BulkNameImporter(db)


def get_job_worker(
    db: AsyncSession = Depends(get_db),
    chemical: PubChemConnector = Depends(get_chemical_connector),
    generative: GenerativeEnricher = Depends(get_generative_enricher)
) -> EnrichmentJobWorker:
    return EnrichmentJobWorker(db, chemical, generative)


async def require_api_key(x_api_key: Optional[str] = Header(None)):
    """
    Gate for write endpoints. Open when no API_KEY is configured.

    Raises:
        AuthenticationError: missing or wrong X-API-Key header
    """
    if not settings.API_KEY:
        return
    if not x_api_key or not secrets.compare_digest(x_api_key, settings.API_KEY):
        raise AuthenticationError("Invalid or missing API key", context={"header": "X-API-Key"})
