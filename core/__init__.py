"""
Core utilities and configuration for the substance catalogue.

Modules:
    config: Application configuration and environment variable management
    database: Database engine, session factory and dialect-aware inserts
    exceptions: Custom exception hierarchy with structured context
    logging: Logging configuration and utilities
    effects: Best-effort wrapper for secondary writes

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import UpsertError, SyncFetchError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "async_session_maker",
    "build_engine",
    "create_all_tables",
    "dialect_insert",
    "setup_logging",
    "best_effort",
    # Exceptions
    "CatalogueException",
    "SourceInvalidError",
    "ChemicalLookupError",
    "ChemicalNotFoundError",
    "ChemicalProviderError",
    "GenerativeError",
    "GenerativeSkippedError",
    "GenerativeProviderError",
    "GenerativeOutputError",
    "PersistenceError",
    "UpsertError",
    "FatalOrchestrationError",
    "BatchLimitExceededError",
    "SyncFetchError",
    "AuthenticationError",
]
