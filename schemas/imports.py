"""
Pydantic schemas for the enrichment pipeline and the bulk name-list import
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime


# ============================================================================
# Pipeline Input
# ============================================================================

class CandidateItem(BaseModel):
    """
    A catalogue item awaiting enrichment.

    Identity fields are optional here on purpose: an item without them is
    reported as a per-item source failure, not rejected with the request.
    """
    external_id: Optional[str] = Field(None, alias="qid", description="Catalogue identifier, e.g. Q12345")
    label: Optional[str] = Field(None, description="Display label from the catalogue")
    description: Optional[str] = Field(None, description="Short catalogue description")
    chemical_ref_id: Optional[int] = Field(None, alias="pubchem_cid", description="Known PubChem CID")

    @validator("external_id", "label", "description", pre=True)
    def strip_text(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    class Config:
        populate_by_name = True


class DeduplicatedEntry(BaseModel):
    """Canonicalized name; slug is unique within a batch"""
    canonical_name: str
    slug: str
    original_name: str


class DelimitedEntry(BaseModel):
    """Row parsed from pasted CSV/TSV input"""
    name: str
    synonyms: List[str] = Field(default_factory=list)
    notes: str = ""


# ============================================================================
# Provider Results
# ============================================================================

class LookupStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    ERROR = "error"
    SKIPPED = "skipped"


class GenerativeStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


class ChemicalFacts(BaseModel):
    """Structured properties from PubChem"""
    cid: int
    iupac_name: Optional[str] = None
    molecular_formula: Optional[str] = None
    molecular_weight: Optional[float] = None
    synonyms: List[str] = Field(default_factory=list)


class ChemicalLookupResult(BaseModel):
    status: LookupStatus
    data: Optional[ChemicalFacts] = None
    error: Optional[str] = None


class GenerativeEnrichment(BaseModel):
    """
    Fixed schema the generative provider must answer with.

    Seven qualitative text fields and a list of source references.
    """
    overview: str
    effects: str
    risks: str
    harm_reduction: str
    interactions: str
    dosage_notes: str
    legal_status_notes: str
    sources: List[str] = Field(default_factory=list)

    @validator("sources", pre=True)
    def coerce_sources(cls, v):
        if v is None:
            return []
        return v

    @classmethod
    def text_fields(cls) -> List[str]:
        return [name for name in cls.model_fields if name != "sources"]


class GenerativeResult(BaseModel):
    status: GenerativeStatus
    data: Optional[GenerativeEnrichment] = None
    error: Optional[str] = None


class EnrichmentData(BaseModel):
    """
    Merged provider output stored on the substance record.

    Each provider has its own optional slot; anything else lands in ``meta``.
    """
    pubchem: Optional[ChemicalFacts] = None
    ai: Optional[GenerativeEnrichment] = None
    meta: Dict[str, Any] = Field(default_factory=dict)

    def to_store(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.pubchem is not None:
            payload["pubchem"] = self.pubchem.model_dump()
        if self.ai is not None:
            payload["ai"] = self.ai.model_dump()
        if self.meta:
            payload["meta"] = dict(self.meta)
        return payload


# ============================================================================
# Batch Enrichment
# ============================================================================

class BatchEnrichmentRequest(BaseModel):
    """Request body for POST /imports/enrich"""
    items: List[CandidateItem] = Field(..., description="Catalogue items, at most 50 per batch")
    dry_run: bool = False
    skip_ai: bool = False
    skip_pubchem: bool = False
    run_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "items": [{"qid": "Q1", "label": "Substance A", "description": "demo"}],
                "dry_run": False,
                "skip_ai": True,
                "skip_pubchem": True
            }
        }


class EnrichmentOutcome(BaseModel):
    """Per-item result; one per submitted item, always"""
    external_id: Optional[str] = Field(None, alias="qid")
    label: Optional[str] = None
    slug: Optional[str] = None
    wikidata_status: str = "pending"
    pubchem_status: str = "pending"
    ai_status: str = "pending"
    db_status: str = "pending"
    confidence_score: int = Field(0, ge=0, le=100)
    stages: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    class Config:
        populate_by_name = True


class BatchSummary(BaseModel):
    total: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    pubchem_not_found: int = 0
    avg_confidence: float = 0.0


class BatchEnrichmentResponse(BaseModel):
    run_id: str
    summary: BatchSummary
    items: List[EnrichmentOutcome]


# ============================================================================
# Bulk Name-List Import
# ============================================================================

class BulkImportOptions(BaseModel):
    fetch_sources: bool = False
    generate_draft: bool = True
    queue_enrichment: bool = False


class BulkImportRequest(BaseModel):
    """Request body for POST /imports/bulk"""
    names: List[str] = Field(default_factory=list)
    options: BulkImportOptions = Field(default_factory=BulkImportOptions)
    import_source: str = Field("paste", description="paste or csv")
    csv_content: Optional[str] = None

    @validator("import_source")
    def validate_import_source(cls, v):
        if v not in ("paste", "csv"):
            raise ValueError("import_source must be 'paste' or 'csv'")
        return v


class BulkImportItemResult(BaseModel):
    name: str
    slug: str
    status: str
    error: Optional[str] = None
    id: Optional[int] = None


class BulkImportSummary(BaseModel):
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


class BulkImportResponse(BaseModel):
    summary: BulkImportSummary
    results: List[BulkImportItemResult]


# ============================================================================
# Enrichment Job Queue
# ============================================================================

class EnrichmentJobOutcome(BaseModel):
    """Result of processing one queued enrichment job"""
    job_id: int
    substance_id: int
    status: str
    pubchem_status: Optional[str] = None
    ai_status: Optional[str] = None
    aliases_added: int = 0
    error: Optional[str] = None


class EnrichmentJobRunResponse(BaseModel):
    processed: int = 0
    done: int = 0
    failed: int = 0
    jobs: List[EnrichmentJobOutcome] = Field(default_factory=list)


class EnrichmentJobInfo(BaseModel):
    id: int
    substance_id: int
    phase: str
    status: str
    error_message: str = ""
    attempts: int = 0
    created_at: datetime
    updated_at: datetime


class EnrichmentJobStatusSummary(BaseModel):
    total: int = 0
    queued: int = 0
    running: int = 0
    done: int = 0
    error: int = 0


class EnrichmentJobStatusResponse(BaseModel):
    summary: EnrichmentJobStatusSummary
    jobs: List[EnrichmentJobInfo]
