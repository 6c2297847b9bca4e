"""
Worker for queued enrichment jobs.

Bulk imports can queue an EnrichmentJob per created substance. A worker pass
claims queued jobs oldest first and moves each one through its phases:

    queued -> running (facts -> summary -> crosslink) -> done | error

Chemical and generative failures are recorded on the substance but do not
fail the job; only a failed write (or a missing substance) does.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from ingestion.connectors.generative import GenerativeEnricher
from ingestion.connectors.pubchem import PubChemConnector
from ingestion.loaders.substance_writer import SubstanceWriter
from ingestion.sanitizer import SchemaColumnIntrospector
from models.base import AliasType, JobStatus
from models.import_log import EnrichmentJob
from models.substance import Substance
from schemas.imports import (
    ChemicalLookupResult,
    EnrichmentData,
    EnrichmentJobInfo,
    EnrichmentJobOutcome,
    EnrichmentJobRunResponse,
    EnrichmentJobStatusResponse,
    EnrichmentJobStatusSummary,
    GenerativeResult,
    GenerativeStatus,
    LookupStatus
)
from core.config import settings
from core.exceptions import PersistenceError
import logging

logger = logging.getLogger(__name__)

SUBSTANCE_NOT_FOUND_MESSAGE = "Substance not found"

# Confidence credited to the summary field once PubChem facts are attached
PUBCHEM_SUMMARY_CONFIDENCE = 0.4


def build_job_update(
    substance: Substance,
    chemical: ChemicalLookupResult,
    generative: GenerativeResult,
    job_id: int
) -> Dict[str, Any]:
    """Enrichment-field update for a substance, merged over what it already holds."""
    facts = chemical.data
    ai = generative.data

    external_ids = dict(substance.external_ids or {})
    if facts:
        external_ids["pubchem_cid"] = facts.cid
        if facts.molecular_formula:
            external_ids["molecular_formula"] = facts.molecular_formula
        if facts.iupac_name:
            external_ids["iupac_name"] = facts.iupac_name

    enrichment = dict(substance.enrichment or {})
    enrichment.update(EnrichmentData(pubchem=facts, ai=ai).to_store())

    confidence = dict(substance.confidence or {})
    confidence["summary"] = PUBCHEM_SUMMARY_CONFIDENCE if facts else confidence.get("summary", 0)

    return {
        "slug": substance.slug,
        "summary": ai.overview if ai else "",
        "external_ids": external_ids,
        "enrichment": enrichment,
        "confidence": confidence,
        "meta": {
            "enrichment_job_id": job_id,
            "pubchem_status": chemical.status.value,
            "ai_status": generative.status.value,
        },
    }


class EnrichmentJobWorker:
    """
    Processes queued enrichment jobs one at a time.

    Every claimed job ends as done or error; nothing per-job propagates.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        chemical_connector: PubChemConnector,
        generative_enricher: Optional[GenerativeEnricher] = None,
        introspector: Optional[SchemaColumnIntrospector] = None
    ):
        self.db = db_session
        self.chemical = chemical_connector
        self.generative = generative_enricher
        self.introspector = introspector or SchemaColumnIntrospector(db_session)

    async def process_queued(self, limit: Optional[int] = None) -> EnrichmentJobRunResponse:
        """Claim and process up to ``limit`` queued jobs, oldest first."""
        limit = limit or settings.ENRICHMENT_JOBS_PER_RUN

        result = await self.db.execute(
            select(EnrichmentJob.id, EnrichmentJob.substance_id)
            .where(EnrichmentJob.status == JobStatus.QUEUED)
            .order_by(EnrichmentJob.created_at, EnrichmentJob.id)
            .limit(limit)
        )
        queued = result.all()
        if not queued:
            return EnrichmentJobRunResponse()

        allowed_columns = await self.introspector.get_allowed_columns()
        writer = SubstanceWriter(self.db, allowed_columns)

        outcomes: List[EnrichmentJobOutcome] = []
        for job_id, substance_id in queued:
            outcome = await self.process_job(job_id, substance_id, writer)
            if outcome is not None:
                outcomes.append(outcome)

        response = EnrichmentJobRunResponse(
            processed=len(outcomes),
            done=sum(1 for o in outcomes if o.status == JobStatus.DONE.value),
            failed=sum(1 for o in outcomes if o.status == JobStatus.ERROR.value),
            jobs=outcomes
        )
        logger.info(
            f"Enrichment jobs processed: {response.processed} "
            f"(done: {response.done}, failed: {response.failed})"
        )
        return response

    async def process_job(
        self,
        job_id: int,
        substance_id: int,
        writer: SubstanceWriter
    ) -> Optional[EnrichmentJobOutcome]:
        """
        Run one job through its phases.

        Returns None when another worker claimed the job first.
        """
        if not await self._claim(job_id):
            logger.debug(f"Enrichment job {job_id} already claimed, skipping")
            return None

        outcome = EnrichmentJobOutcome(job_id=job_id, substance_id=substance_id, status=JobStatus.RUNNING.value)

        try:
            substance = await self.db.get(Substance, substance_id, populate_existing=True)
            if substance is None:
                return await self._fail(outcome, SUBSTANCE_NOT_FOUND_MESSAGE)

            # Phase: facts
            cid = (substance.external_ids or {}).get("pubchem_cid")
            chemical = await self.chemical.fetch(substance.name, cid)
            outcome.pubchem_status = chemical.status.value

            # Phase: summary
            await self._set_job(job_id, phase="summary")
            generative = await self._summarize(substance, chemical)
            outcome.ai_status = generative.status.value

            # Phase: crosslink
            await self._set_job(job_id, phase="crosslink")
            if chemical.status == LookupStatus.OK and chemical.data:
                facts = chemical.data
                aliases = [(s, AliasType.SYNONYM, "pubchem") for s in facts.synonyms]
                if facts.iupac_name:
                    aliases.append((facts.iupac_name, AliasType.IUPAC, "pubchem"))
                outcome.aliases_added = await writer.add_aliases(substance_id, aliases)

            substance = await self.db.get(Substance, substance_id, populate_existing=True)
            await writer.refresh_enrichment(substance, build_job_update(substance, chemical, generative, job_id))

        except PersistenceError as e:
            logger.error(f"Enrichment job {job_id} failed: {e.message}", extra={"error_context": e.to_dict()})
            return await self._fail(outcome, e.message)
        except Exception as e:
            logger.exception(f"Unexpected error in enrichment job {job_id}")
            await self.db.rollback()
            return await self._fail(outcome, str(e) or type(e).__name__)

        await self._set_job(job_id, status=JobStatus.DONE, phase="done", error_message="")
        outcome.status = JobStatus.DONE.value
        logger.info(
            f"Enrichment job {job_id} done for substance {substance_id} "
            f"(pubchem: {outcome.pubchem_status}, ai: {outcome.ai_status})"
        )
        return outcome

    async def status_summary(self, limit: int = 100) -> EnrichmentJobStatusResponse:
        """Latest jobs with counts per status"""
        result = await self.db.execute(
            select(EnrichmentJob)
            .order_by(EnrichmentJob.created_at.desc(), EnrichmentJob.id.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        jobs = result.scalars().all()

        summary = EnrichmentJobStatusSummary(total=len(jobs))
        for job in jobs:
            key = job.status.value
            setattr(summary, key, getattr(summary, key) + 1)

        return EnrichmentJobStatusResponse(
            summary=summary,
            jobs=[
                EnrichmentJobInfo(
                    id=job.id,
                    substance_id=job.substance_id,
                    phase=job.phase,
                    status=job.status.value,
                    error_message=job.error_message or "",
                    attempts=job.attempts or 0,
                    created_at=job.created_at,
                    updated_at=job.updated_at
                )
                for job in jobs
            ]
        )

    async def _summarize(self, substance: Substance, chemical: ChemicalLookupResult) -> GenerativeResult:
        if self.generative is None:
            return GenerativeResult(status=GenerativeStatus.SKIPPED)

        context: Dict[str, Any] = {}
        if chemical.data:
            context = {
                "molecular_formula": chemical.data.molecular_formula,
                "synonyms": chemical.data.synonyms,
            }
        return await self.generative.enrich(substance.name, substance.summary or "", context)

    async def _claim(self, job_id: int) -> bool:
        result = await self.db.execute(
            update(EnrichmentJob)
            .where(EnrichmentJob.id == job_id, EnrichmentJob.status == JobStatus.QUEUED)
            .values(
                status=JobStatus.RUNNING,
                phase="facts",
                attempts=EnrichmentJob.attempts + 1,
                updated_at=datetime.utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def _set_job(self, job_id: int, **values):
        await self.db.execute(
            update(EnrichmentJob)
            .where(EnrichmentJob.id == job_id)
            .values(updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def _fail(self, outcome: EnrichmentJobOutcome, message: str) -> EnrichmentJobOutcome:
        await self._set_job(outcome.job_id, status=JobStatus.ERROR, phase="error", error_message=message)
        outcome.status = JobStatus.ERROR.value
        outcome.error = message
        return outcome
