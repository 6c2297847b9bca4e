"""
Import pipeline components for the substance catalogue.

Modules:
    canonicalizer: Name normalization, slugs, synonyms, deduplication, CSV parsing
    content_safety: Pattern-based filter for generated prose
    scoring: Confidence score from per-stage outcomes
    sanitizer: Column allowlist and overflow of unknown keys into meta
    runner: Per-item enrichment orchestrator with batch isolation
    bulk: Name-list import (paste or CSV) creating drafts
    jobs: Worker for enrichment jobs queued by bulk imports

Subpackages:
    connectors: Wikidata catalogue, PubChem lookup, generative providers
    loaders: Natural-key substance writer

Architecture:
    Every item runs through source check → chemical lookup → generative
    enrichment → score → persist. A failure in any stage only marks that
    item; the rest of the batch keeps going.

Usage:
    from ingestion.runner import EnrichmentRunner
    from ingestion.connectors.pubchem import PubChemConnector

    runner = EnrichmentRunner(session, PubChemConnector(), enricher)
    response = await runner.run(items, dry_run=True)
    print(response.summary.avg_confidence)
"""

__all__ = [
    "EnrichmentRunner",
    "BulkNameImporter",
    "EnrichmentJobWorker",
    "SubstanceWriter",
    "PubChemConnector",
    "WikidataCatalogue",
    "GenerativeEnricher",
]
