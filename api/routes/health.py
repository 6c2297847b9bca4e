"""
Health check endpoint with database and sync consumer status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, text
from api.dependencies import get_db
from schemas.api import HealthCheckResponse
from schemas.sync import SyncConsumerInfo
from models.checkpoint import SyncConsumer
from core.config import settings
from datetime import datetime, timedelta
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Cursor state of every sync consumer
    - Consumers that have not synced within two scheduler intervals (stale)
    """

    # Check database connectivity
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    consumers = []
    stale = 0
    stale_before = datetime.utcnow() - timedelta(minutes=2 * settings.SYNC_INTERVAL_MINUTES)

    if db_connected:
        try:
            result = await db.execute(select(SyncConsumer).order_by(SyncConsumer.consumer_name))
            for consumer in result.scalars().all():
                if consumer.last_sync_at is None or consumer.last_sync_at < stale_before:
                    stale += 1
                consumers.append(SyncConsumerInfo.model_validate(consumer))
        except Exception as e:
            logger.error(f"Failed to fetch sync consumers: {str(e)}")

    # Staleness only matters when the scheduler is supposed to be running
    counted_stale = stale if settings.SYNC_SCHEDULER_ENABLED else 0

    return HealthCheckResponse(
        status=HealthCheckResponse.determine_status(db_connected, len(consumers), counted_stale),
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        sync_consumers=consumers,
        total_consumers=len(consumers),
        stale_consumers=counted_stale
    )
