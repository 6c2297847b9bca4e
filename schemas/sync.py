"""
Pydantic schemas for the sync consumer
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class SyncRecord(BaseModel):
    """A source record as seen by a sync sink"""
    entity_id: str
    slug: str
    updated_at: datetime
    payload: Dict[str, Any] = Field(default_factory=dict)


class SyncRecordError(BaseModel):
    entity_id: Optional[str] = None
    error: str


class SyncResult(BaseModel):
    """Outcome of one sync consumer run"""
    consumer_name: str
    run_id: str
    status: str
    records_fetched: int = 0
    records_processed: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    cursor_before: Optional[str] = None
    cursor_after: Optional[str] = None
    errors: List[SyncRecordError] = Field(default_factory=list)
    error_message: Optional[str] = None


class SyncConsumerInfo(BaseModel):
    """Consumer state for listings and health checks"""
    consumer_name: str
    entity_type: str
    last_cursor: Optional[str]
    last_sync_at: Optional[datetime]
    total_runs: int = 0
    total_records_processed: int = 0
    config: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True
