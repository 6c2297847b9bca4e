"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class, portable column types and shared enums
    substance: Canonical substance records, aliases and reference sources
    import_log: Import audit log and enrichment job queue
    checkpoint: Sync consumer state (cursor per consumer)
    sync_run: Sync run history and per-record sync errors
    mirror: Local read-model filled by the mirror sync consumer

Database Schema:
    PostgreSQL is the production store (JSONB for flexible payloads).
    The same models create cleanly on SQLite for the test suite.

Usage:
    from models.substance import Substance, SubstanceAlias
    from models.base import SubstanceStatus, AliasType

Relationships:
    - Substance → SubstanceAlias, SubstanceSource (one-to-many)
    - Substance → EnrichmentJob (one-to-many queue entries)
    - SyncConsumer → SyncRun → SyncErrorRecord (one-to-many tracking)
"""

__all__ = [
    "Base",
    "SubstanceStatus",
    "AliasType",
    "SyncStatus",
    "JobStatus",
    "ImportSourceType",
    "Substance",
    "SubstanceAlias",
    "SubstanceSource",
    "ImportLog",
    "EnrichmentJob",
    "SyncConsumer",
    "SyncRun",
    "SyncErrorRecord",
    "MirroredSubstance",
]
