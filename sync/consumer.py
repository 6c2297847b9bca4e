# ============================================================================
# File: sync/consumer.py
# Description: Cursor-based pull replication with per-record error isolation
# ============================================================================
"""
Sync Consumer - mirrors changed records from a source into a sink.

One run:
1. Fetch or create the consumer state (cursor)
2. Open a run record (running)
3. Fetch one page of records newer than the cursor
4. Apply each record through the sink; failures become error rows
5. Advance the cursor to the newest successfully handled timestamp
6. Close the run record with counts

The cursor only moves forward. A run that sees no records leaves it alone.
A run is ``failed`` only when the page fetch itself fails.
"""

from typing import Callable, Dict, List, Optional, Tuple
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging

from models.checkpoint import SyncConsumer
from models.sync_run import SyncRun, SyncErrorRecord
from models.base import SyncStatus
from core.config import settings
from core.exceptions import SyncFetchError
from schemas.sync import SyncResult, SyncRecordError
from sync.sources import SyncSource, PublishedSubstanceSource
from sync.sinks import SyncSink, MirrorSink

logger = logging.getLogger(__name__)


def parse_cursor(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def format_cursor(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SyncConsumerRunner:
    """
    Runs one named consumer over a source/sink pair.

    Responsibilities:
    - Lazily create consumer state
    - Track every invocation as a SyncRun
    - Never let one bad record block the rest of the page
    - Keep the cursor monotonic
    """

    def __init__(
        self,
        db_session: AsyncSession,
        consumer_name: str,
        source: SyncSource,
        sink: SyncSink,
        page_size: Optional[int] = None
    ):
        self.db = db_session
        self.consumer_name = consumer_name
        self.source = source
        self.sink = sink
        self.page_size = page_size or settings.SYNC_PAGE_SIZE

    async def get_or_create_state(self) -> SyncConsumer:
        result = await self.db.execute(
            select(SyncConsumer).where(SyncConsumer.consumer_name == self.consumer_name)
        )
        state = result.scalar_one_or_none()

        if state is None:
            state = SyncConsumer(
                consumer_name=self.consumer_name,
                entity_type=self.source.entity_type,
                config={"page_size": self.page_size},
                total_runs=0,
                total_records_processed=0
            )
            self.db.add(state)
            await self.db.commit()
            await self.db.refresh(state)
            logger.info(f"Created sync consumer '{self.consumer_name}'")

        return state

    async def run(self) -> SyncResult:
        # --------------------------------------------------
        # PHASE 1: STATE + RUN RECORD
        # --------------------------------------------------
        state = await self.get_or_create_state()
        consumer_pk = state.id
        cursor_before = state.last_cursor

        sync_run = SyncRun(
            consumer_id=consumer_pk,
            status=SyncStatus.RUNNING,
            started_at=datetime.utcnow(),
            cursor_before=cursor_before
        )
        self.db.add(sync_run)
        await self.db.commit()
        await self.db.refresh(sync_run)
        run_pk = sync_run.id
        run_id = sync_run.run_id

        logger.info(f"Sync '{self.consumer_name}' started (run {run_id}, cursor: {cursor_before})")

        # --------------------------------------------------
        # PHASE 2: FETCH PAGE
        # --------------------------------------------------
        try:
            records = await self.source.fetch_page(parse_cursor(cursor_before), self.page_size)
        except Exception as e:
            error = SyncFetchError(
                "Failed to fetch source page",
                context={"consumer_name": self.consumer_name, "cursor": cursor_before},
                original_exception=e
            )
            logger.error(f"Sync '{self.consumer_name}' failed: {e}", extra={"error_context": error.to_dict()})
            await self.db.rollback()
            return await self._fail_run(run_pk, run_id, consumer_pk, cursor_before, str(e) or type(e).__name__)

        # --------------------------------------------------
        # PHASE 3: APPLY RECORDS
        # --------------------------------------------------
        applied = 0
        skipped = 0
        handled_timestamps: List[datetime] = []
        errors: List[SyncRecordError] = []

        for record in records:
            try:
                if await self.sink.apply(record):
                    applied += 1
                else:
                    skipped += 1
                # Up-to-date records count as handled for the cursor
                handled_timestamps.append(record.updated_at)
            except Exception as e:
                message = str(e) or type(e).__name__
                logger.warning(f"Sync '{self.consumer_name}' record {record.entity_id} failed: {message}")
                errors.append(SyncRecordError(entity_id=record.entity_id, error=message))
                await self._record_error(run_pk, record.entity_id, message, record.slug)

        # --------------------------------------------------
        # PHASE 4: ADVANCE CURSOR + CLOSE RUN
        # --------------------------------------------------
        cursor_after = self.advance_cursor(cursor_before, handled_timestamps)

        state = await self.db.get(SyncConsumer, consumer_pk, populate_existing=True)
        state.last_cursor = cursor_after
        state.last_sync_at = datetime.utcnow()
        state.total_runs = (state.total_runs or 0) + 1
        state.total_records_processed = (state.total_records_processed or 0) + applied

        sync_run = await self.db.get(SyncRun, run_pk, populate_existing=True)
        self._close_run(
            sync_run,
            SyncStatus.SUCCESS,
            fetched=len(records),
            processed=applied,
            skipped=skipped,
            failed=len(errors),
            cursor_after=cursor_after,
            error_message=f"{len(errors)} records failed" if errors else None
        )
        await self.db.commit()

        logger.info(
            f"Sync '{self.consumer_name}' completed - Fetched: {len(records)}, Applied: {applied}, "
            f"Skipped: {skipped}, Failed: {len(errors)}, Cursor: {cursor_after}"
        )

        return SyncResult(
            consumer_name=self.consumer_name,
            run_id=run_id,
            status=SyncStatus.SUCCESS.value,
            records_fetched=len(records),
            records_processed=applied,
            records_skipped=skipped,
            records_failed=len(errors),
            cursor_before=cursor_before,
            cursor_after=cursor_after,
            errors=errors
        )

    @staticmethod
    def advance_cursor(cursor_before: Optional[str], timestamps: List[datetime]) -> Optional[str]:
        """Newest handled timestamp, never behind the previous cursor."""
        if not timestamps:
            return cursor_before

        newest = max(timestamps)
        previous = parse_cursor(cursor_before)
        if previous is not None and previous >= newest:
            return cursor_before
        return format_cursor(newest)

    async def _record_error(self, run_pk: int, entity_id: str, message: str, slug: str):
        # The sink may have left the session mid-transaction
        await self.db.rollback()
        self.db.add(
            SyncErrorRecord(
                sync_run_id=run_pk,
                entity_id=entity_id,
                error_message=message,
                error_context={"consumer_name": self.consumer_name, "slug": slug}
            )
        )
        await self.db.commit()

    async def _fail_run(
        self,
        run_pk: int,
        run_id: str,
        consumer_pk: int,
        cursor_before: Optional[str],
        error_message: str
    ) -> SyncResult:
        sync_run = await self.db.get(SyncRun, run_pk, populate_existing=True)
        self._close_run(sync_run, SyncStatus.FAILED, cursor_after=cursor_before, error_message=error_message)

        state = await self.db.get(SyncConsumer, consumer_pk, populate_existing=True)
        state.total_runs = (state.total_runs or 0) + 1
        await self.db.commit()

        return SyncResult(
            consumer_name=self.consumer_name,
            run_id=run_id,
            status=SyncStatus.FAILED.value,
            cursor_before=cursor_before,
            cursor_after=cursor_before,
            error_message=error_message
        )

    @staticmethod
    def _close_run(
        sync_run: SyncRun,
        status: SyncStatus,
        fetched: int = 0,
        processed: int = 0,
        skipped: int = 0,
        failed: int = 0,
        cursor_after: Optional[str] = None,
        error_message: Optional[str] = None
    ):
        sync_run.status = status
        sync_run.completed_at = datetime.utcnow()
        sync_run.duration_seconds = (sync_run.completed_at - sync_run.started_at).total_seconds()
        sync_run.records_fetched = fetched
        sync_run.records_processed = processed
        sync_run.records_skipped = skipped
        sync_run.records_failed = failed
        sync_run.cursor_after = cursor_after
        sync_run.error_message = error_message


# ============================================================================
# Consumer registry
# ============================================================================

ConsumerFactory = Callable[[AsyncSession], Tuple[SyncSource, SyncSink]]

CONSUMER_REGISTRY: Dict[str, ConsumerFactory] = {
    "mirror_substances": lambda session: (PublishedSubstanceSource(session), MirrorSink(session)),
}


def build_consumer_runner(
    db_session: AsyncSession,
    consumer_name: str,
    entity_type: Optional[str] = None,
    page_size: Optional[int] = None
) -> SyncConsumerRunner:
    """
    Build a runner for a registered consumer.

    Raises:
        KeyError: unknown consumer name
        ValueError: entity type does not match the consumer's source
    """
    if consumer_name not in CONSUMER_REGISTRY:
        raise KeyError(consumer_name)

    source, sink = CONSUMER_REGISTRY[consumer_name](db_session)
    if entity_type and entity_type != source.entity_type:
        raise ValueError(
            f"Consumer '{consumer_name}' syncs '{source.entity_type}', not '{entity_type}'"
        )

    return SyncConsumerRunner(db_session, consumer_name, source, sink, page_size)
