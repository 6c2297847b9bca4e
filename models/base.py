from sqlalchemy import JSON, BigInteger, Integer
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


# ============================================================================
# ENUMS
# ============================================================================

class SubstanceStatus(str, enum.Enum):
    """Editorial status of a substance record"""
    DRAFT = "draft"
    REVIEW = "review"
    PUBLISHED = "published"


class AliasType(str, enum.Enum):
    """Kind of alternate name"""
    SYNONYM = "synonym"
    IUPAC = "iupac"
    TRADE_NAME = "trade_name"
    ABBREVIATION = "abbreviation"
    OTHER = "other"


class SyncStatus(str, enum.Enum):
    """Sync run status"""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class JobStatus(str, enum.Enum):
    """Enrichment job queue status"""
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class ImportSourceType(str, enum.Enum):
    """Origin of an import batch"""
    PASTE = "paste"
    CSV = "csv"
    CATALOGUE = "catalogue"
