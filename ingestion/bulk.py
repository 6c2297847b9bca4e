"""
Bulk name-list import.

Turns a pasted list (or CSV/TSV upload) of substance names into draft
records, optionally with reference source links and queued enrichment.
Every entry is written independently; one failure never aborts the list.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ingestion.canonicalizer import deduplicate, parse_delimited, slugify
from ingestion.loaders.substance_writer import SubstanceWriter, WriteStatus
from ingestion.sanitizer import SchemaColumnIntrospector
from models.base import AliasType, ImportSourceType, JobStatus
from models.import_log import EnrichmentJob, ImportLog
from models.substance import SubstanceSource
from core.effects import best_effort
from core.exceptions import PersistenceError
from schemas.imports import (
    BulkImportItemResult,
    BulkImportRequest,
    BulkImportResponse,
    BulkImportSummary,
    DeduplicatedEntry
)

logger = logging.getLogger(__name__)

WRITE_TO_BULK_STATUS = {
    WriteStatus.INSERTED: "created",
    WriteStatus.UPDATED: "updated",
    WriteStatus.SKIPPED: "skipped",
}


def build_reference_sources(name: str, substance_id: int) -> List[SubstanceSource]:
    """Reference links for a substance (URLs only, nothing is fetched or scraped)."""
    encoded = quote(name, safe="")
    first_letter = name[:1].lower() or "x"
    return [
        SubstanceSource(
            substance_id=substance_id,
            source_name=f"PsychonautWiki: {name}",
            source_url=f"https://psychonautwiki.org/wiki/{encoded}",
            source_type="psychonautwiki",
            license_note="URL reference only. Manual review required per ToS.",
            confidence=0.7
        ),
        SubstanceSource(
            substance_id=substance_id,
            source_name=f"drugcom.de: {name}",
            source_url=f"https://www.drugcom.de/drogenlexikon/buchstabe-{first_letter}/{slugify(name)}/",
            source_type="drugcom",
            license_note="URL reference only. No scraping per ToS.",
            confidence=0.8
        ),
        SubstanceSource(
            substance_id=substance_id,
            source_name=f"PubMed search: {name}",
            source_url=f"https://pubmed.ncbi.nlm.nih.gov/?term={encoded}+pharmacology",
            source_type="pubmed",
            license_note="Search URL only. Abstracts available via NCBI E-utilities API.",
            confidence=0.9
        ),
        SubstanceSource(
            substance_id=substance_id,
            source_name=f"Reddit community reports: {name}",
            source_url=f"https://www.reddit.com/search/?q={encoded}&type=link&sort=top",
            source_type="reddit",
            license_note="Community reports only. Not used as factual source.",
            confidence=0.3
        ),
    ]


def build_bulk_row(entry: DeduplicatedEntry, generate_draft: bool) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "slug": entry.slug,
        "name": entry.canonical_name,
        "canonical_name": entry.canonical_name,
        "external_ids": {},
        "enrichment": {},
    }
    if generate_draft:
        row.update({
            "categories": [],
            "summary": "",
            "mechanism": "",
            "effects": {"positive": [], "neutral": [], "negative": []},
            "risks": {"acute": [], "chronic": [], "contraindications": []},
            "interactions": {"high_risk_pairs": [], "notes": []},
            "dependence": {"potential": "unknown", "notes": []},
            "legality": {"germany": "unknown", "notes": []},
            "citations": {},
            "confidence": {
                "summary": 0, "mechanism": 0, "effects": 0, "risks": 0,
                "interactions": 0, "dependence": 0, "legality": 0,
            },
            "tags": [],
            "related_slugs": [],
        })
    return row


class BulkNameImporter:
    """Imports a list of names as draft substances."""

    def __init__(self, db_session: AsyncSession, introspector: Optional[SchemaColumnIntrospector] = None):
        self.db = db_session
        self.introspector = introspector or SchemaColumnIntrospector(db_session)

    async def import_names(self, request: BulkImportRequest, admin_user: str = "admin") -> BulkImportResponse:
        names = list(request.names)
        csv_synonyms: Dict[str, List[str]] = {}

        if request.import_source == "csv" and request.csv_content:
            entries = parse_delimited(request.csv_content)
            names = [e.name for e in entries]
            csv_synonyms = {e.name: e.synonyms for e in entries if e.synonyms}

        deduplicated = deduplicate(names)
        logger.info(f"Bulk import: {len(names)} names, {len(deduplicated)} after deduplication")

        allowed_columns = await self.introspector.get_allowed_columns()
        writer = SubstanceWriter(self.db, allowed_columns)

        results = []
        for entry in deduplicated:
            results.append(await self._import_entry(entry, writer, request, csv_synonyms))

        summary = BulkImportSummary(
            total=len(deduplicated),
            created=sum(1 for r in results if r.status == "created"),
            updated=sum(1 for r in results if r.status == "updated"),
            skipped=sum(1 for r in results if r.status == "skipped"),
            failed=sum(1 for r in results if r.status == "failed"),
        )

        await best_effort(
            "audit_log",
            lambda: self._write_audit_log(request, summary, admin_user),
            session=self.db
        )

        logger.info(
            f"Bulk import completed - Created: {summary.created}, Updated: {summary.updated}, "
            f"Skipped: {summary.skipped}, Failed: {summary.failed}"
        )
        return BulkImportResponse(summary=summary, results=results)

    async def _import_entry(
        self,
        entry: DeduplicatedEntry,
        writer: SubstanceWriter,
        request: BulkImportRequest,
        csv_synonyms: Dict[str, List[str]]
    ) -> BulkImportItemResult:
        name = entry.canonical_name

        try:
            result = await writer.upsert(
                build_bulk_row(entry, request.options.generate_draft),
                names=[entry.original_name]
            )
        except PersistenceError as e:
            logger.error(f"Bulk write failed for '{name}': {e.message}", extra={"error_context": e.to_dict()})
            return BulkImportItemResult(name=name, slug=entry.slug, status="failed", error=e.message)
        except Exception as e:
            logger.exception(f"Unexpected bulk import error for '{name}'")
            return BulkImportItemResult(name=name, slug=entry.slug, status="failed", error=str(e) or type(e).__name__)

        status = WRITE_TO_BULK_STATUS[result.status]
        if result.status == WriteStatus.SKIPPED:
            return BulkImportItemResult(name=name, slug=result.slug, status=status, error=result.error)

        substance_id = result.substance_id

        synonyms = csv_synonyms.get(entry.original_name, [])
        if synonyms:
            await writer.add_aliases(substance_id, [(s, AliasType.SYNONYM, "csv_import") for s in synonyms])

        if request.options.fetch_sources:
            await best_effort("reference_sources", lambda: self._add_sources(name, substance_id), session=self.db)

        if request.options.queue_enrichment:
            await best_effort("queue_enrichment", lambda: self._queue_enrichment(substance_id), session=self.db)

        return BulkImportItemResult(name=name, slug=result.slug, status=status, id=substance_id)

    async def _add_sources(self, name: str, substance_id: int):
        self.db.add_all(build_reference_sources(name, substance_id))
        await self.db.commit()

    async def _queue_enrichment(self, substance_id: int):
        self.db.add(EnrichmentJob(substance_id=substance_id, phase="pending", status=JobStatus.QUEUED))
        await self.db.commit()

    async def _write_audit_log(self, request: BulkImportRequest, summary: BulkImportSummary, admin_user: str):
        source_type = ImportSourceType.CSV if request.import_source == "csv" else ImportSourceType.PASTE
        self.db.add(
            ImportLog(
                admin_user=admin_user,
                source_type=source_type,
                source_detail=f"{summary.total} names",
                total_count=summary.total,
                created_count=summary.created,
                updated_count=summary.updated,
                skipped_count=summary.skipped,
                error_count=summary.failed,
                details={"options": request.options.model_dump()}
            )
        )
        await self.db.commit()
