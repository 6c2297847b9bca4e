"""
Custom exceptions for the substance catalogue pipelines with structured error context.

Every exception carries a context dictionary so that failures can be logged
and stored (per-item outcomes, sync error rows) without losing detail.

Exception Hierarchy:
    CatalogueException (base)
    ├── SourceInvalidError
    ├── ChemicalLookupError
    │   ├── ChemicalNotFoundError
    │   └── ChemicalProviderError
    ├── GenerativeError
    │   ├── GenerativeSkippedError
    │   ├── GenerativeProviderError
    │   └── GenerativeOutputError
    ├── PersistenceError
    │   └── UpsertError
    ├── FatalOrchestrationError
    ├── BatchLimitExceededError
    ├── SyncFetchError
    └── AuthenticationError

Only the last four propagate to callers. Everything else is caught at the
item boundary and turned into a status field.
"""

from typing import Optional, Dict, Any
from datetime import datetime


class CatalogueException(Exception):
    """
    Base exception for all catalogue pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (slug, provider, timestamp, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Source Errors
# ============================================================================

class SourceInvalidError(CatalogueException):
    """
    Raised when a candidate item lacks its catalogue identity.

    Context should include:
        - external_id: Catalogue identifier (may be empty)
        - label: Item label (may be empty)
    """
    pass


# ============================================================================
# Chemical Lookup Errors
# ============================================================================

class ChemicalLookupError(CatalogueException):
    """Base exception for chemical-properties lookups."""
    pass


class ChemicalNotFoundError(ChemicalLookupError):
    """The provider answered, but has no record for the name/identifier."""
    pass


class ChemicalProviderError(ChemicalLookupError):
    """
    The provider failed (HTTP error, timeout, malformed body).

    Context should include:
        - url: Request URL
        - status_code: HTTP status code (if applicable)
    """
    pass


# ============================================================================
# Generative Enrichment Errors
# ============================================================================

class GenerativeError(CatalogueException):
    """Base exception for generative enrichment."""
    pass


class GenerativeSkippedError(GenerativeError):
    """No generative provider is configured."""
    pass


class GenerativeProviderError(GenerativeError):
    """
    The completion endpoint failed (HTTP error, timeout, empty answer).

    Context should include:
        - provider: Provider name
        - status_code: HTTP status code (if applicable)
    """
    pass


class GenerativeOutputError(GenerativeError):
    """
    The completion could not be parsed into the enrichment schema.

    Context should include:
        - provider: Provider name
        - attempt: Attempt number
    """
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class PersistenceError(CatalogueException):
    """Base exception for store writes."""
    pass


class UpsertError(PersistenceError):
    """
    Raised when a natural-key upsert fails.

    Context should include:
        - slug: Slug of the record being written
        - operation: INSERT or UPDATE
    """
    pass


# ============================================================================
# Batch / Setup Errors
# ============================================================================

class FatalOrchestrationError(CatalogueException):
    """
    Raised when the batch-level catalogue listing fails before any
    per-item work has started.
    """
    pass


class BatchLimitExceededError(CatalogueException):
    """
    Raised when a batch exceeds the configured hard cap.

    Context should include:
        - batch_size: Number of submitted items
        - limit: Configured cap
    """
    pass


class SyncFetchError(CatalogueException):
    """
    Raised when a sync source page cannot be fetched.

    Context should include:
        - consumer_name: Sync consumer
        - cursor: Cursor used for the fetch
    """
    pass


class AuthenticationError(CatalogueException):
    """Authentication failures at the API gate."""
    pass
