from sqlalchemy import Column, String, Enum, DateTime, Float, Integer, Text, Index, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base, BigIntPK, JSONType, SyncStatus


class SyncRun(Base):
    """
    One row per sync consumer invocation.

    Purpose:
    - Audit trail of all sync runs
    - Cursor before/after for debugging replication gaps
    - Aggregated counts per run
    """
    __tablename__ = "sync_runs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    run_id = Column(String(36), default=lambda: str(uuid.uuid4()), unique=True, nullable=False, index=True)
    consumer_id = Column(Integer, ForeignKey("sync_consumers.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(Enum(SyncStatus), default=SyncStatus.RUNNING, nullable=False, index=True)

    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    records_fetched = Column(Integer, default=0)
    records_processed = Column(Integer, default=0)
    records_skipped = Column(Integer, default=0)
    records_failed = Column(Integer, default=0)

    # Cursor info
    cursor_before = Column(String(64), nullable=True)
    cursor_after = Column(String(64), nullable=True)

    error_message = Column(Text, nullable=True)
    details = Column(JSONType, nullable=True)

    errors = relationship("SyncErrorRecord", back_populates="sync_run", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_sync_run_consumer_started", "consumer_id", "started_at"),
    )


class SyncErrorRecord(Base):
    """A single record that failed during a sync run. Never blocks its siblings."""
    __tablename__ = "sync_errors"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sync_run_id = Column(BigIntPK, ForeignKey("sync_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=False)
    error_context = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    sync_run = relationship("SyncRun", back_populates="errors")
