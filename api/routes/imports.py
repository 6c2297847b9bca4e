"""
Import endpoints: batch enrichment, catalogue pages, bulk name lists and queued jobs
"""

from fastapi import APIRouter, Depends, Header, Query
from typing import Optional
from api.dependencies import (
    get_bulk_importer,
    get_catalogue,
    get_enrichment_runner,
    get_job_worker,
    require_api_key
)
from ingestion.bulk import BulkNameImporter
from ingestion.connectors.wikidata import WikidataCatalogue
from ingestion.jobs import EnrichmentJobWorker
from ingestion.runner import EnrichmentRunner
from models.base import ImportSourceType
from schemas.imports import (
    BatchEnrichmentRequest,
    BatchEnrichmentResponse,
    BulkImportRequest,
    BulkImportResponse,
    EnrichmentJobRunResponse,
    EnrichmentJobStatusResponse
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/imports", tags=["Imports"], dependencies=[Depends(require_api_key)])


@router.post("/enrich", response_model=BatchEnrichmentResponse)
async def enrich_batch(
    body: BatchEnrichmentRequest,
    runner: EnrichmentRunner = Depends(get_enrichment_runner),
    x_admin_user: Optional[str] = Header(None)
):
    """
    Enrich and import a batch of catalogue items.

    Every submitted item yields exactly one outcome, whatever happens to it.
    Batches above the configured cap are rejected before any work.
    """
    return await runner.run(
        body.items,
        dry_run=body.dry_run,
        skip_ai=body.skip_ai,
        skip_pubchem=body.skip_pubchem,
        run_id=body.run_id,
        source_type=ImportSourceType.CATALOGUE,
        admin_user=x_admin_user or "api"
    )


@router.post("/catalogue", response_model=BatchEnrichmentResponse)
async def enrich_catalogue_page(
    limit: int = Query(50, ge=1, description="Items per page (at most the batch cap)"),
    offset: int = Query(0, ge=0, description="Catalogue offset"),
    dry_run: bool = Query(False),
    skip_ai: bool = Query(False),
    skip_pubchem: bool = Query(False),
    runner: EnrichmentRunner = Depends(get_enrichment_runner),
    catalogue: WikidataCatalogue = Depends(get_catalogue),
    x_admin_user: Optional[str] = Header(None)
):
    """List one page from the Wikidata catalogue and run it as a batch."""
    return await runner.run_from_catalogue(
        catalogue,
        limit=limit,
        offset=offset,
        dry_run=dry_run,
        skip_ai=skip_ai,
        skip_pubchem=skip_pubchem,
        admin_user=x_admin_user or "api"
    )


@router.post("/bulk", response_model=BulkImportResponse)
async def bulk_import(
    body: BulkImportRequest,
    importer: BulkNameImporter = Depends(get_bulk_importer),
    x_admin_user: Optional[str] = Header(None)
):
    """Create draft substances from a pasted name list or CSV/TSV content."""
    return await importer.import_names(body, admin_user=x_admin_user or "api")


@router.post("/jobs/run", response_model=EnrichmentJobRunResponse)
async def run_enrichment_jobs(
    limit: int = Query(10, ge=1, le=100, description="Queued jobs to process"),
    worker: EnrichmentJobWorker = Depends(get_job_worker)
):
    """Process queued enrichment jobs, oldest first."""
    return await worker.process_queued(limit=limit)


@router.get("/jobs", response_model=EnrichmentJobStatusResponse)
async def list_enrichment_jobs(
    limit: int = Query(100, ge=1, le=500),
    worker: EnrichmentJobWorker = Depends(get_job_worker)
):
    """Latest enrichment jobs with a per-status summary."""
    return await worker.status_summary(limit=limit)
