import logging
from typing import List, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker
from core.config import settings
from core.database import async_session_maker
from ingestion.connectors.generative import GenerativeEnricher
from ingestion.connectors.providers import build_generative_provider
from ingestion.connectors.pubchem import PubChemConnector
from ingestion.jobs import EnrichmentJobWorker
from sync.consumer import build_consumer_runner

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        consumer_names: Optional[List[str]] = None,
        interval_minutes: Optional[int] = None,
        jobs_per_run: Optional[int] = None,
        chemical_connector: Optional[PubChemConnector] = None,
        generative_enricher: Optional[GenerativeEnricher] = None
    ):
        self.scheduler = AsyncIOScheduler()
        self.SessionLocal = session_factory or async_session_maker
        self.consumer_names = consumer_names or list(settings.SYNC_CONSUMERS)
        self.interval_minutes = interval_minutes or settings.SYNC_INTERVAL_MINUTES
        self.jobs_per_run = settings.ENRICHMENT_JOBS_PER_RUN if jobs_per_run is None else jobs_per_run
        self.chemical_connector = chemical_connector
        self.generative_enricher = generative_enricher

    async def run_sync_job(self):
        """Job to run every configured sync consumer once"""
        logger.info(f"Scheduler: Starting sync job for {self.consumer_names}")
        for consumer_name in self.consumer_names:
            async with self.SessionLocal() as session:
                try:
                    runner = build_consumer_runner(session, consumer_name)
                    result = await runner.run()
                    logger.info(
                        f"Scheduler: '{consumer_name}' finished with status {result.status} "
                        f"({result.records_processed} applied)"
                    )
                except Exception as e:
                    # One consumer failing must not stop the others
                    logger.error(f"Scheduler: sync job for '{consumer_name}' failed - {e}")

    async def run_enrichment_jobs(self):
        """Job to work off queued enrichment jobs"""
        if self.chemical_connector is None:
            self.chemical_connector = PubChemConnector()
        if self.generative_enricher is None:
            self.generative_enricher = GenerativeEnricher(build_generative_provider(settings))

        async with self.SessionLocal() as session:
            try:
                worker = EnrichmentJobWorker(session, self.chemical_connector, self.generative_enricher)
                result = await worker.process_queued(limit=self.jobs_per_run)
                if result.processed:
                    logger.info(f"Scheduler: {result.processed} enrichment jobs processed ({result.failed} failed)")
            except Exception as e:
                logger.error(f"Scheduler: enrichment job pass failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="sync_job",
            replace_existing=True
        )
        if self.jobs_per_run > 0:
            self.scheduler.add_job(
                self.run_enrichment_jobs,
                trigger=IntervalTrigger(minutes=self.interval_minutes),
                id="enrichment_job",
                replace_existing=True
            )
        self.scheduler.start()
        logger.info(f"Sync Scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Sync Scheduler stopped")
