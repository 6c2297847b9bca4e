from sqlalchemy import Column, Integer, String, DateTime, BigInteger
from datetime import datetime
from models.base import Base, JSONType


class SyncConsumer(Base):
    """
    Cursor state per named sync consumer.

    Purpose:
    - Resume replication from the last successfully processed timestamp
    - Avoid re-mirroring records that are already up to date

    Design:
    - One row per consumer (consumer_name is unique)
    - Created lazily on the first run
    - last_cursor is an ISO timestamp and only ever moves forward
    """
    __tablename__ = "sync_consumers"

    id = Column(Integer, primary_key=True, autoincrement=True)

    consumer_name = Column(String(100), nullable=False, unique=True, index=True)
    entity_type = Column(String(100), nullable=False)

    last_cursor = Column(String(64), nullable=True)
    last_sync_at = Column(DateTime, nullable=True)
    config = Column(JSONType, nullable=False, default=dict)

    # Statistics
    total_runs = Column(Integer, default=0)
    total_records_processed = Column(BigInteger, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
