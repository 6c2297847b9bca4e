"""
Pydantic schemas for health responses
"""

from pydantic import BaseModel, Field
from typing import List
from datetime import datetime
from schemas.sync import SyncConsumerInfo

# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    sync_consumers: List[SyncConsumerInfo] = Field(default_factory=list)
    total_consumers: int = 0
    stale_consumers: int = 0

    @classmethod
    def determine_status(cls, database_connected: bool, total: int, stale: int) -> str:
        """Overall status from DB connectivity and consumer freshness"""
        if not database_connected:
            return "unhealthy"
        if total == 0 or stale == 0:
            return "healthy"
        if stale < total:
            return "degraded"
        return "unhealthy"

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "total_consumers": 1,
                "stale_consumers": 0,
                "sync_consumers": [
                    {
                        "consumer_name": "mirror_substances",
                        "entity_type": "substances",
                        "last_cursor": "2024-01-15T10:00:00",
                        "last_sync_at": "2024-01-15T10:00:05",
                        "total_runs": 12,
                        "total_records_processed": 340
                    }
                ]
            }
        }
