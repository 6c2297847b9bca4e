"""
Integration tests for the cursor-based sync consumer
"""

import pytest
from datetime import datetime, timedelta
from sqlalchemy import select, func
from models.base import SubstanceStatus, SyncStatus
from models.checkpoint import SyncConsumer
from models.mirror import MirroredSubstance
from models.substance import Substance
from models.sync_run import SyncErrorRecord, SyncRun
from schemas.sync import SyncRecord
from sync.consumer import SyncConsumerRunner, build_consumer_runner, format_cursor
from sync.sinks import MirrorSink, SyncSink
from sync.sources import SyncSource

T0 = datetime(2024, 1, 15, 10, 0, 0)
T1 = T0 + timedelta(minutes=1)
T2 = T0 + timedelta(minutes=2)
T3 = T0 + timedelta(minutes=3)


def record(entity_id, updated_at, slug=None):
    return SyncRecord(
        entity_id=entity_id,
        slug=slug or f"substance-{entity_id}",
        updated_at=updated_at,
        payload={"name": f"Substance {entity_id}"}
    )


class StaticSource(SyncSource):
    """Returns a fixed page once, then nothing newer than the cursor"""

    entity_type = "substances"

    def __init__(self, records):
        self.records = records
        self.cursors = []

    async def fetch_page(self, cursor, limit):
        self.cursors.append(cursor)
        return [r for r in self.records if cursor is None or r.updated_at > cursor][:limit]


class FailingSource(SyncSource):
    entity_type = "substances"

    async def fetch_page(self, cursor, limit):
        raise ConnectionError("source unreachable")


class RecordingSink(SyncSink):
    """Applies everything except the entity ids listed in ``fail``"""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.applied = []

    async def apply(self, record):
        if record.entity_id in self.fail:
            raise ValueError(f"cannot apply {record.entity_id}")
        self.applied.append(record.entity_id)
        return True


async def add_substance(db_session, slug, updated_at, status=SubstanceStatus.PUBLISHED):
    substance = Substance(
        slug=slug,
        name=slug.title(),
        canonical_name=slug.title(),
        status=status,
        updated_at=updated_at
    )
    db_session.add(substance)
    await db_session.commit()
    return substance


class TestAdvanceCursor:

    def test_no_records_keeps_cursor(self):
        assert SyncConsumerRunner.advance_cursor("2024-01-15T10:00:00", []) == "2024-01-15T10:00:00"
        assert SyncConsumerRunner.advance_cursor(None, []) is None

    def test_out_of_order_timestamps_use_the_maximum(self):
        assert SyncConsumerRunner.advance_cursor(None, [T1, T3, T2]) == format_cursor(T3)

    def test_never_moves_backwards(self):
        assert SyncConsumerRunner.advance_cursor(format_cursor(T3), [T1, T2]) == format_cursor(T3)


@pytest.mark.asyncio
async def test_first_run_creates_state_and_advances_cursor(db_session):
    source = StaticSource([record("1", T1), record("3", T3), record("2", T2)])
    sink = RecordingSink()
    runner = SyncConsumerRunner(db_session, "test_consumer", source, sink)

    result = await runner.run()

    assert result.status == "success"
    assert result.records_fetched == 3
    assert result.records_processed == 3
    assert result.cursor_before is None
    assert result.cursor_after == format_cursor(T3)
    assert sink.applied == ["1", "3", "2"]

    state = (await db_session.execute(select(SyncConsumer))).scalar_one()
    assert state.consumer_name == "test_consumer"
    assert state.entity_type == "substances"
    assert state.last_cursor == format_cursor(T3)
    assert state.total_runs == 1
    assert state.total_records_processed == 3

    sync_run = (await db_session.execute(select(SyncRun))).scalar_one()
    assert sync_run.status == SyncStatus.SUCCESS
    assert sync_run.cursor_after == format_cursor(T3)
    assert sync_run.completed_at is not None


@pytest.mark.asyncio
async def test_empty_page_leaves_cursor_unchanged(db_session):
    source = StaticSource([record("1", T1)])
    runner = SyncConsumerRunner(db_session, "test_consumer", source, RecordingSink())

    await runner.run()
    result = await runner.run()

    assert result.records_fetched == 0
    assert result.cursor_after == result.cursor_before == format_cursor(T1)
    assert source.cursors == [None, T1]

    state = (await db_session.execute(select(SyncConsumer))).scalar_one()
    assert state.total_runs == 2
    assert state.last_cursor == format_cursor(T1)


@pytest.mark.asyncio
async def test_failed_record_is_logged_and_does_not_block_others(db_session):
    source = StaticSource([record("1", T1), record("2", T2), record("3", T3)])
    sink = RecordingSink(fail={"3"})
    runner = SyncConsumerRunner(db_session, "test_consumer", source, sink)

    result = await runner.run()

    assert result.status == "success"
    assert result.records_processed == 2
    assert result.records_failed == 1
    assert result.errors[0].entity_id == "3"
    # The failed record is not counted as handled
    assert result.cursor_after == format_cursor(T2)

    error = (await db_session.execute(select(SyncErrorRecord))).scalar_one()
    assert error.entity_id == "3"
    assert "cannot apply 3" in error.error_message
    assert error.error_context["consumer_name"] == "test_consumer"


@pytest.mark.asyncio
async def test_failed_fetch_marks_run_failed_and_keeps_cursor(db_session):
    runner = SyncConsumerRunner(db_session, "test_consumer", StaticSource([record("1", T1)]), RecordingSink())
    await runner.run()

    failing = SyncConsumerRunner(db_session, "test_consumer", FailingSource(), RecordingSink())
    result = await failing.run()

    assert result.status == "failed"
    assert result.error_message == "source unreachable"
    assert result.cursor_after == format_cursor(T1)

    state = (await db_session.execute(select(SyncConsumer))).scalar_one()
    assert state.last_cursor == format_cursor(T1)
    assert state.total_runs == 2

    runs = (await db_session.execute(select(SyncRun).order_by(SyncRun.id))).scalars().all()
    assert [r.status for r in runs] == [SyncStatus.SUCCESS, SyncStatus.FAILED]
    assert runs[1].error_message == "source unreachable"


@pytest.mark.asyncio
async def test_mirror_consumer_end_to_end(db_session):
    """
    Test: published substances are mirrored, drafts are ignored, updates re-sync
    """
    koffein_id = (await add_substance(db_session, "koffein", T1)).id
    await add_substance(db_session, "lsd", T2)
    await add_substance(db_session, "entwurf", T3, status=SubstanceStatus.DRAFT)

    runner = build_consumer_runner(db_session, "mirror_substances")
    first = await runner.run()

    assert first.records_fetched == 2
    assert first.records_processed == 2
    assert first.cursor_after == format_cursor(T2)

    mirrored = (await db_session.execute(select(MirroredSubstance).order_by(MirroredSubstance.slug))).scalars().all()
    assert [m.slug for m in mirrored] == ["koffein", "lsd"]
    assert mirrored[0].payload["name"] == "Koffein"
    assert mirrored[0].source_updated_at == T1

    # Nothing changed: nothing fetched
    second = await build_consumer_runner(db_session, "mirror_substances").run()
    assert second.records_fetched == 0

    # A newer version of koffein is picked up and replaces the mirror row
    T4 = T3 + timedelta(minutes=1)
    koffein = await db_session.get(Substance, koffein_id)
    koffein.summary = "Aktualisiert."
    koffein.updated_at = T4
    await db_session.commit()

    third = await build_consumer_runner(db_session, "mirror_substances").run()
    assert third.records_processed == 1
    assert third.cursor_after == format_cursor(T4)

    row = (await db_session.execute(
        select(MirroredSubstance).where(MirroredSubstance.slug == "koffein")
    )).scalar_one()
    await db_session.refresh(row)
    assert row.source_updated_at == T4
    assert await db_session.scalar(select(func.count()).select_from(MirroredSubstance)) == 2


@pytest.mark.asyncio
async def test_mirror_sink_skips_older_versions(db_session):
    sink = MirrorSink(db_session)

    assert await sink.apply(record("1", T2, slug="koffein")) is True
    assert await sink.apply(record("1", T1, slug="koffein")) is False
    assert await sink.apply(record("1", T2, slug="koffein")) is False
    assert await sink.apply(record("1", T3, slug="koffein")) is True

    row = (await db_session.execute(select(MirroredSubstance))).scalar_one()
    await db_session.refresh(row)
    assert row.source_updated_at == T3


@pytest.mark.asyncio
async def test_skipped_records_still_advance_cursor(db_session):
    """
    Test: a record the sink already holds counts as handled
    """
    sink = MirrorSink(db_session)
    await sink.apply(record("1", T3, slug="koffein"))

    source = StaticSource([record("1", T2, slug="koffein")])
    result = await SyncConsumerRunner(db_session, "test_consumer", source, sink).run()

    assert result.records_skipped == 1
    assert result.records_processed == 0
    assert result.cursor_after == format_cursor(T2)


@pytest.mark.asyncio
async def test_build_consumer_runner_rejects_unknown_and_mismatched(db_session):
    with pytest.raises(KeyError):
        build_consumer_runner(db_session, "no_such_consumer")

    with pytest.raises(ValueError):
        build_consumer_runner(db_session, "mirror_substances", entity_type="users")
