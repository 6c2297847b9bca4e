from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, ForeignKey, Index
from datetime import datetime
from models.base import Base, BigIntPK, JSONType, JobStatus, ImportSourceType


class ImportLog(Base):
    """
    Audit trail of import batches.

    Written through the best-effort effect helper: a failed audit write
    never fails the import it describes.
    """
    __tablename__ = "import_logs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    run_id = Column(String(64), nullable=True, index=True)
    admin_user = Column(String(200), nullable=False, default="unknown")
    source_type = Column(Enum(ImportSourceType), nullable=False, default=ImportSourceType.PASTE)
    source_detail = Column(Text, nullable=False, default="")

    total_count = Column(Integer, default=0)
    created_count = Column(Integer, default=0)
    updated_count = Column(Integer, default=0)
    skipped_count = Column(Integer, default=0)
    error_count = Column(Integer, default=0)

    details = Column(JSONType, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)


class EnrichmentJob(Base):
    """Queued background enrichment for a substance."""
    __tablename__ = "enrichment_jobs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    substance_id = Column(BigIntPK, ForeignKey("substances.id", ondelete="CASCADE"), nullable=False, index=True)
    phase = Column(String(50), nullable=False, default="pending")
    status = Column(Enum(JobStatus), nullable=False, default=JobStatus.QUEUED)
    error_message = Column(Text, nullable=False, default="")
    attempts = Column(Integer, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_enrichment_jobs_status", "status"),
    )
