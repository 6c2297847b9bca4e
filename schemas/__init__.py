"""
Pydantic schemas for request/response validation.

Schemas:
    imports: Enrichment batch, bulk name import and per-stage result types
    sync: Sync records, run results and consumer state
    api: Health check response

Usage:
    from schemas.imports import BatchEnrichmentRequest, CandidateItem
    from schemas.sync import SyncResult

Example:
    item = CandidateItem(qid="Q1", label="Caffeine", pubchem_cid="2519")
    assert item.external_id == "Q1"
"""

__all__ = [
    "CandidateItem",
    "BatchEnrichmentRequest",
    "BatchEnrichmentResponse",
    "BulkImportRequest",
    "BulkImportResponse",
    "SyncResult",
    "SyncConsumerInfo",
    "HealthCheckResponse",
]
