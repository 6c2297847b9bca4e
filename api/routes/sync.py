"""
Sync endpoints: run a consumer once, list consumer states
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from api.dependencies import get_db, require_api_key
from models.checkpoint import SyncConsumer
from schemas.sync import SyncConsumerInfo, SyncResult
from sync.consumer import build_consumer_runner
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["Sync"], dependencies=[Depends(require_api_key)])


@router.post("/{consumer_name}/run", response_model=SyncResult)
async def run_consumer(
    consumer_name: str,
    entity_type: str = Query("substances", description="Entity type the consumer mirrors"),
    page_size: Optional[int] = Query(None, ge=1, le=1000, description="Records per run"),
    db: AsyncSession = Depends(get_db)
):
    """
    Run one sync pass for a registered consumer.

    A failed page fetch is reported with status ``failed``; the cursor is
    left where it was.
    """
    try:
        runner = build_consumer_runner(db, consumer_name, entity_type=entity_type, page_size=page_size)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown sync consumer: {consumer_name}")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return await runner.run()


@router.get("/consumers", response_model=List[SyncConsumerInfo])
async def list_consumers(db: AsyncSession = Depends(get_db)):
    """Cursor state of every consumer that has run at least once."""
    result = await db.execute(select(SyncConsumer).order_by(SyncConsumer.consumer_name))
    return [SyncConsumerInfo.model_validate(c) for c in result.scalars().all()]
