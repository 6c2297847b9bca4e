"""
Sync sources: where a consumer reads changed records from
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models.substance import Substance
from models.base import SubstanceStatus
from schemas.sync import SyncRecord


class SyncSource(ABC):
    """
    Page-wise reader of changed records.

    Implementations return records with ``updated_at`` strictly greater
    than the cursor, oldest first, at most ``limit`` of them.
    """

    entity_type: str = ""

    @abstractmethod
    async def fetch_page(self, cursor: Optional[datetime], limit: int) -> List[SyncRecord]:
        pass


class PublishedSubstanceSource(SyncSource):
    """Published rows of the ``substances`` table."""

    entity_type = "substances"

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def fetch_page(self, cursor: Optional[datetime], limit: int) -> List[SyncRecord]:
        query = select(Substance).where(Substance.status == SubstanceStatus.PUBLISHED)
        if cursor is not None:
            query = query.where(Substance.updated_at > cursor)
        query = query.order_by(Substance.updated_at, Substance.id).limit(limit)

        result = await self.db.execute(query)
        return [self.to_record(s) for s in result.scalars().all()]

    @staticmethod
    def to_record(substance: Substance) -> SyncRecord:
        return SyncRecord(
            entity_id=str(substance.id),
            slug=substance.slug,
            updated_at=substance.updated_at,
            payload={
                "name": substance.name,
                "canonical_name": substance.canonical_name,
                "categories": substance.categories,
                "summary": substance.summary,
                "mechanism": substance.mechanism,
                "effects": substance.effects,
                "risks": substance.risks,
                "interactions": substance.interactions,
                "dependence": substance.dependence,
                "legality": substance.legality,
                "citations": substance.citations,
                "tags": substance.tags,
                "related_slugs": substance.related_slugs,
                "external_ids": substance.external_ids,
            }
        )
