"""
Sync sinks: version-checked, idempotent writes into a derived store
"""

from abc import ABC, abstractmethod
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models.mirror import MirroredSubstance
from core.database import dialect_insert
from schemas.sync import SyncRecord
import logging

logger = logging.getLogger(__name__)


class SyncSink(ABC):
    @abstractmethod
    async def apply(self, record: SyncRecord) -> bool:
        """
        Write one record.

        Returns:
            True when written, False when the local copy is already as new

        Raises:
            Exception: on write failure; the caller logs it and moves on
        """
        pass


class MirrorSink(SyncSink):
    """
    Upserts records into ``mirror_substances`` keyed by slug.

    An incoming record is applied only when it is strictly newer than the
    stored copy. The same condition guards the conflict update, so a
    concurrent older write cannot overwrite a newer one.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def apply(self, record: SyncRecord) -> bool:
        try:
            result = await self.db.execute(
                select(MirroredSubstance.source_updated_at).where(MirroredSubstance.slug == record.slug)
            )
            local_updated_at = result.scalar_one_or_none()

            if local_updated_at is not None and local_updated_at >= record.updated_at:
                logger.debug(f"Mirror of '{record.slug}' is up to date")
                return False

            stmt = dialect_insert(self.db, MirroredSubstance).values(
                slug=record.slug,
                source_id=record.entity_id,
                name=record.payload.get("name", ""),
                payload=record.payload,
                source_updated_at=record.updated_at,
                synced_at=datetime.utcnow()
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["slug"],
                set_={
                    "source_id": stmt.excluded.source_id,
                    "name": stmt.excluded.name,
                    "payload": stmt.excluded.payload,
                    "source_updated_at": stmt.excluded.source_updated_at,
                    "synced_at": stmt.excluded.synced_at,
                },
                where=MirroredSubstance.source_updated_at < stmt.excluded.source_updated_at
            )

            await self.db.execute(stmt)
            await self.db.commit()
            return True

        except Exception:
            await self.db.rollback()
            raise
