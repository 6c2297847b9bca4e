# ============================================================================
# File: ingestion/runner.py
# Description: Batch enrichment orchestrator with per-item failure isolation
# ============================================================================
"""
Enrichment Runner - sequences catalogue items through the import pipeline.

Per item:
    source check -> chemical lookup -> generative enrichment -> scoring -> write

This module provides:
- A per-item stage machine recorded on every outcome
- Partial failure support (provider failures never abort an item)
- Per-item write isolation (one failed write never blocks its siblings)
- Dry runs that compute everything but skip the write
- A hard batch cap; callers paginate across invocations
"""

from typing import Any, Dict, List, Optional
from enum import Enum
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import uuid

from ingestion.canonicalizer import resolve_synonym, slugify
from ingestion.connectors.pubchem import PubChemConnector
from ingestion.connectors.generative import GenerativeEnricher
from ingestion.connectors.wikidata import WikidataCatalogue
from ingestion.loaders.substance_writer import SubstanceWriter, WriteStatus
from ingestion.sanitizer import SchemaColumnIntrospector
from ingestion.scoring import compute_confidence_score
from models.base import AliasType, ImportSourceType
from models.import_log import ImportLog
from core.config import settings
from core.effects import best_effort
from core.exceptions import (
    BatchLimitExceededError,
    FatalOrchestrationError,
    PersistenceError,
    SourceInvalidError
)
from schemas.imports import (
    BatchEnrichmentResponse,
    BatchSummary,
    CandidateItem,
    ChemicalLookupResult,
    EnrichmentData,
    EnrichmentOutcome,
    GenerativeResult,
    GenerativeStatus,
    LookupStatus
)

logger = logging.getLogger(__name__)


class ItemStage(str, Enum):
    """Stage machine for one item; only SOURCE_FAILED ends an item early"""
    PENDING = "pending"
    SOURCE_VALIDATED = "source_validated"
    SOURCE_FAILED = "source_failed"
    CHEMICAL_ENRICHED = "chemical_enriched"
    CHEMICAL_SKIPPED = "chemical_skipped"
    CHEMICAL_NOT_FOUND = "chemical_not_found"
    CHEMICAL_ERROR = "chemical_error"
    GENERATIVE_ENRICHED = "generative_enriched"
    GENERATIVE_SKIPPED = "generative_skipped"
    GENERATIVE_FAILED = "generative_failed"
    SCORED = "scored"
    PERSISTED = "persisted"
    PERSIST_FAILED = "persist_failed"
    PERSIST_SKIPPED = "persist_skipped"


CHEMICAL_STAGES = {
    LookupStatus.OK: ItemStage.CHEMICAL_ENRICHED,
    LookupStatus.SKIPPED: ItemStage.CHEMICAL_SKIPPED,
    LookupStatus.NOT_FOUND: ItemStage.CHEMICAL_NOT_FOUND,
    LookupStatus.ERROR: ItemStage.CHEMICAL_ERROR,
}

GENERATIVE_STAGES = {
    GenerativeStatus.OK: ItemStage.GENERATIVE_ENRICHED,
    GenerativeStatus.SKIPPED: ItemStage.GENERATIVE_SKIPPED,
    GenerativeStatus.FAILED: ItemStage.GENERATIVE_FAILED,
}


def build_draft_row(
    item: CandidateItem,
    slug: str,
    canonical_name: str,
    chemical: ChemicalLookupResult,
    generative: GenerativeResult,
    outcome: EnrichmentOutcome,
    run_id: str
) -> Dict[str, Any]:
    """Full draft row for a new substance; updates only use its enrichment fields."""
    facts = chemical.data
    ai = generative.data

    external_ids: Dict[str, Any] = {"wikidata": item.external_id}
    cid = facts.cid if facts else item.chemical_ref_id
    if cid:
        external_ids["pubchem_cid"] = cid
    if facts and facts.molecular_formula:
        external_ids["molecular_formula"] = facts.molecular_formula
    if facts and facts.iupac_name:
        external_ids["iupac_name"] = facts.iupac_name

    enrichment = EnrichmentData(pubchem=facts, ai=ai)

    return {
        "slug": slug,
        "name": item.label,
        "canonical_name": canonical_name,
        "summary": (ai.overview if ai else "") or item.description or "",
        "categories": [],
        "mechanism": "",
        "effects": {"positive": [], "neutral": [], "negative": []},
        "risks": {"acute": [], "chronic": [], "contraindications": []},
        "interactions": {"high_risk_pairs": [], "notes": []},
        "dependence": {"potential": "unknown", "notes": []},
        "legality": {"germany": "unknown", "notes": []},
        "citations": {},
        "tags": [],
        "related_slugs": [],
        "confidence": {"import_score": outcome.confidence_score},
        "external_ids": external_ids,
        "enrichment": enrichment.to_store(),
        "meta": {
            "qid": item.external_id,
            "pubchem_cid": cid,
            "wikidata_status": outcome.wikidata_status,
            "pubchem_status": outcome.pubchem_status,
            "ai_status": outcome.ai_status,
            "confidence_score": outcome.confidence_score,
            "import_run_id": run_id,
        },
    }


class EnrichmentRunner:
    """
    Batch enrichment orchestrator

    Responsibilities:
    - Enforce the batch cap before any work
    - Run every item through every stage, sequentially
    - Convert per-item failures into outcome status fields
    - Aggregate a batch summary
    - Write a best-effort audit record for real runs
    """

    def __init__(
        self,
        db_session: AsyncSession,
        chemical: PubChemConnector,
        generative: GenerativeEnricher,
        batch_limit: Optional[int] = None,
        introspector: Optional[SchemaColumnIntrospector] = None
    ):
        self.db = db_session
        self.chemical = chemical
        self.generative = generative
        self.batch_limit = batch_limit or settings.IMPORT_BATCH_LIMIT
        self.introspector = introspector or SchemaColumnIntrospector(db_session)

    async def run(
        self,
        items: List[CandidateItem],
        dry_run: bool = False,
        skip_ai: bool = False,
        skip_pubchem: bool = False,
        run_id: Optional[str] = None,
        source_type: ImportSourceType = ImportSourceType.CATALOGUE,
        admin_user: str = "system"
    ) -> BatchEnrichmentResponse:
        """
        Run one batch through the pipeline.

        Returns:
            BatchEnrichmentResponse with exactly one outcome per input item

        Raises:
            BatchLimitExceededError: batch larger than the configured cap
        """
        # --------------------------------------------------
        # PHASE 1: SETUP
        # --------------------------------------------------
        if len(items) > self.batch_limit:
            raise BatchLimitExceededError(
                f"Batch of {len(items)} items exceeds the limit of {self.batch_limit}",
                context={"batch_size": len(items), "limit": self.batch_limit}
            )

        run_id = run_id or str(uuid.uuid4())
        logger.info(
            f"Starting enrichment run {run_id}: {len(items)} items "
            f"(dry_run={dry_run}, skip_ai={skip_ai}, skip_pubchem={skip_pubchem})"
        )

        # Schema allowlist is read once per batch
        allowed_columns = await self.introspector.get_allowed_columns()
        writer = SubstanceWriter(self.db, allowed_columns)

        # --------------------------------------------------
        # PHASE 2: PER-ITEM PIPELINE
        # --------------------------------------------------
        outcomes: List[EnrichmentOutcome] = []

        for index, item in enumerate(items):
            try:
                outcome = await self._process_item(item, writer, dry_run, skip_ai, skip_pubchem, run_id)
            except Exception as e:
                # Last-resort guard: the item still gets an outcome
                logger.exception(f"Unexpected error for item {index} ({item.external_id})")
                outcome = EnrichmentOutcome(
                    external_id=item.external_id,
                    label=item.label,
                    db_status="failed",
                    error=str(e) or type(e).__name__
                )
            outcomes.append(outcome)

        # --------------------------------------------------
        # PHASE 3: SUMMARY + AUDIT
        # --------------------------------------------------
        summary = self.summarize(outcomes)

        if not dry_run:
            await best_effort(
                "audit_log",
                lambda: self._write_audit_log(run_id, summary, source_type, admin_user, skip_ai, skip_pubchem),
                session=self.db
            )

        logger.info(
            f"Enrichment run {run_id} completed - Inserted: {summary.inserted}, "
            f"Updated: {summary.updated}, Skipped: {summary.skipped}, Failed: {summary.failed}"
        )
        return BatchEnrichmentResponse(run_id=run_id, summary=summary, items=outcomes)

    async def run_from_catalogue(
        self,
        catalogue: WikidataCatalogue,
        limit: Optional[int] = None,
        offset: int = 0,
        **options
    ) -> BatchEnrichmentResponse:
        """
        List one page of catalogue items and run it as a batch.

        Raises:
            BatchLimitExceededError: page size above the batch cap
            FatalOrchestrationError: the listing call itself failed
        """
        limit = limit or self.batch_limit
        if limit > self.batch_limit:
            raise BatchLimitExceededError(
                f"Page size {limit} exceeds the limit of {self.batch_limit}",
                context={"batch_size": limit, "limit": self.batch_limit}
            )

        try:
            items = await catalogue.list_candidates(limit=limit, offset=offset)
        except Exception as e:
            raise FatalOrchestrationError(
                "Catalogue listing failed",
                context={"limit": limit, "offset": offset},
                original_exception=e
            )

        return await self.run(items, source_type=ImportSourceType.CATALOGUE, **options)

    async def _process_item(
        self,
        item: CandidateItem,
        writer: SubstanceWriter,
        dry_run: bool,
        skip_ai: bool,
        skip_pubchem: bool,
        run_id: str
    ) -> EnrichmentOutcome:
        outcome = EnrichmentOutcome(
            external_id=item.external_id,
            label=item.label,
            stages=[ItemStage.PENDING.value]
        )

        # ----- Source -----
        if not item.external_id or not item.label:
            error = SourceInvalidError(
                "Missing QID or label",
                context={"external_id": item.external_id, "label": item.label}
            )
            logger.warning(error.message, extra={"error_context": error.to_dict()})
            outcome.wikidata_status = "failed"
            outcome.pubchem_status = "skipped"
            outcome.ai_status = "skipped"
            outcome.db_status = "failed"
            outcome.error = error.message
            outcome.stages.append(ItemStage.SOURCE_FAILED.value)
            return outcome

        outcome.wikidata_status = "ok"
        outcome.stages.append(ItemStage.SOURCE_VALIDATED.value)

        canonical_name = resolve_synonym(item.label)
        outcome.slug = slugify(canonical_name)

        # ----- Chemical -----
        if skip_pubchem:
            chemical = ChemicalLookupResult(status=LookupStatus.SKIPPED)
        else:
            chemical = await self.chemical.fetch(item.label, item.chemical_ref_id)
        outcome.pubchem_status = chemical.status.value
        outcome.stages.append(CHEMICAL_STAGES[chemical.status].value)

        # ----- Generative -----
        if skip_ai:
            generative = GenerativeResult(status=GenerativeStatus.SKIPPED)
        else:
            context = {}
            if chemical.data:
                context = {
                    "molecular_formula": chemical.data.molecular_formula,
                    "synonyms": chemical.data.synonyms,
                }
            generative = await self.generative.enrich(item.label, item.description or "", context)
        outcome.ai_status = generative.status.value
        outcome.stages.append(GENERATIVE_STAGES[generative.status].value)

        # ----- Score -----
        facts = chemical.data
        outcome.confidence_score = compute_confidence_score(
            source_validated=True,
            has_description=bool(item.description),
            chemical_status=chemical.status.value,
            has_synonyms=bool(facts and facts.synonyms),
            has_formula=bool(facts and facts.molecular_formula),
            generative_status=generative.status.value,
            has_generative_data=generative.data is not None
        )
        outcome.stages.append(ItemStage.SCORED.value)

        # ----- Persist -----
        if dry_run:
            outcome.db_status = "skipped"
            outcome.stages.append(ItemStage.PERSIST_SKIPPED.value)
            return outcome

        row = build_draft_row(item, outcome.slug, canonical_name, chemical, generative, outcome, run_id)

        try:
            result = await writer.upsert(row)
        except PersistenceError as e:
            logger.error(
                f"Write failed for {item.external_id}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            outcome.db_status = "failed"
            outcome.error = e.message
            outcome.stages.append(ItemStage.PERSIST_FAILED.value)
            return outcome
        except Exception as e:
            logger.exception(f"Unexpected write error for {item.external_id}")
            outcome.db_status = "failed"
            outcome.error = str(e) or type(e).__name__
            outcome.stages.append(ItemStage.PERSIST_FAILED.value)
            return outcome

        outcome.db_status = result.status.value
        outcome.slug = result.slug
        if result.error:
            outcome.error = result.error
        outcome.stages.append(ItemStage.PERSISTED.value)

        if result.status == WriteStatus.INSERTED and facts:
            aliases = [(s, AliasType.SYNONYM, "pubchem") for s in facts.synonyms]
            if facts.iupac_name:
                aliases.append((facts.iupac_name, AliasType.IUPAC, "pubchem"))
            await writer.add_aliases(result.substance_id, aliases)

        return outcome

    @staticmethod
    def summarize(outcomes: List[EnrichmentOutcome]) -> BatchSummary:
        total = len(outcomes)
        return BatchSummary(
            total=total,
            inserted=sum(1 for o in outcomes if o.db_status == "inserted"),
            updated=sum(1 for o in outcomes if o.db_status == "updated"),
            skipped=sum(1 for o in outcomes if o.db_status == "skipped"),
            failed=sum(1 for o in outcomes if o.db_status == "failed"),
            pubchem_not_found=sum(1 for o in outcomes if o.pubchem_status == "not_found"),
            avg_confidence=round(sum(o.confidence_score for o in outcomes) / total, 1) if total else 0.0
        )

    async def _write_audit_log(
        self,
        run_id: str,
        summary: BatchSummary,
        source_type: ImportSourceType,
        admin_user: str,
        skip_ai: bool,
        skip_pubchem: bool
    ):
        self.db.add(
            ImportLog(
                run_id=run_id,
                admin_user=admin_user,
                source_type=source_type,
                source_detail=f"enrichment batch of {summary.total} items",
                total_count=summary.total,
                created_count=summary.inserted,
                updated_count=summary.updated,
                skipped_count=summary.skipped,
                error_count=summary.failed,
                details={
                    "skip_ai": skip_ai,
                    "skip_pubchem": skip_pubchem,
                    "pubchem_not_found": summary.pubchem_not_found,
                    "avg_confidence": summary.avg_confidence,
                }
            )
        )
        await self.db.commit()
