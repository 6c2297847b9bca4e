"""
Tests for failure scenarios and error handling in the import pipeline
"""

import pytest
from sqlalchemy import select, func
from core.exceptions import BatchLimitExceededError, FatalOrchestrationError, UpsertError
from ingestion.bulk import BulkNameImporter
from ingestion.loaders.substance_writer import SubstanceWriter
from ingestion.runner import EnrichmentRunner, ItemStage
from models.import_log import ImportLog
from models.substance import Substance
from schemas.imports import BulkImportRequest, CandidateItem, ChemicalLookupResult, LookupStatus


async def count(db_session, model):
    result = await db_session.execute(select(func.count()).select_from(model))
    return result.scalar()


def make_items(n):
    return [CandidateItem(qid=f"Q{i}", label=f"Substance {chr(64 + i)}") for i in range(1, n + 1)]


@pytest.mark.asyncio
async def test_one_failed_write_does_not_block_the_batch(db_session, fake_chemical, fake_generative, monkeypatch):
    """
    Test: the third of five writes fails, the other four are persisted
    """
    original_upsert = SubstanceWriter.upsert

    async def flaky_upsert(self, row, names=()):
        if row["slug"] == "substance-c":
            raise UpsertError("INSERT failed for 'substance-c': disk full", context={"slug": row["slug"]})
        return await original_upsert(self, row, names)

    monkeypatch.setattr(SubstanceWriter, "upsert", flaky_upsert)

    runner = EnrichmentRunner(db_session, fake_chemical, fake_generative)
    response = await runner.run(make_items(5), skip_ai=True, skip_pubchem=True)

    assert len(response.items) == 5
    assert [o.db_status for o in response.items] == ["inserted", "inserted", "failed", "inserted", "inserted"]
    failed = response.items[2]
    assert "disk full" in failed.error
    assert failed.stages[-1] == ItemStage.PERSIST_FAILED.value
    # The score is still computed for the failed item
    assert failed.confidence_score == 20

    assert response.summary.inserted == 4
    assert response.summary.failed == 1
    assert await count(db_session, Substance) == 4


@pytest.mark.asyncio
async def test_missing_identity_is_a_per_item_failure(db_session, fake_chemical, fake_generative):
    """
    Test: an item without QID is reported, not rejected with the batch
    """
    items = [CandidateItem(label="Ohne QID"), CandidateItem(qid="Q2", label="Substance B")]
    runner = EnrichmentRunner(db_session, fake_chemical, fake_generative)

    response = await runner.run(items)

    invalid = response.items[0]
    assert invalid.wikidata_status == "failed"
    assert invalid.pubchem_status == "skipped"
    assert invalid.ai_status == "skipped"
    assert invalid.db_status == "failed"
    assert invalid.confidence_score == 0
    assert invalid.stages == [ItemStage.PENDING.value, ItemStage.SOURCE_FAILED.value]

    # Providers are not called for the invalid item
    assert fake_chemical.calls == ["Substance B"]
    assert response.items[1].db_status == "inserted"


@pytest.mark.asyncio
async def test_unexpected_provider_exception_is_contained(db_session, fake_generative):
    """
    Test: a provider that raises instead of reporting still yields an outcome
    """

    class ExplodingChemical:
        async def fetch(self, label, ref_id=None):
            if label == "Substance A":
                raise RuntimeError("connector bug")
            return ChemicalLookupResult(status=LookupStatus.NOT_FOUND)

    runner = EnrichmentRunner(db_session, ExplodingChemical(), fake_generative)
    response = await runner.run(make_items(2))

    assert response.items[0].db_status == "failed"
    assert response.items[0].error == "connector bug"
    assert response.items[1].db_status == "inserted"


@pytest.mark.asyncio
async def test_oversized_batch_is_rejected_before_any_work(db_session, fake_chemical, fake_generative):
    runner = EnrichmentRunner(db_session, fake_chemical, fake_generative, batch_limit=2)

    with pytest.raises(BatchLimitExceededError) as exc_info:
        await runner.run(make_items(3))

    assert exc_info.value.context["batch_size"] == 3
    assert exc_info.value.context["limit"] == 2
    assert fake_chemical.calls == []
    assert await count(db_session, Substance) == 0


@pytest.mark.asyncio
async def test_catalogue_listing_failure_is_fatal(db_session, fake_chemical, fake_generative):
    class DownCatalogue:
        async def list_candidates(self, limit=50, offset=0):
            raise ConnectionError("Connection refused")

    runner = EnrichmentRunner(db_session, fake_chemical, fake_generative)

    with pytest.raises(FatalOrchestrationError) as exc_info:
        await runner.run_from_catalogue(DownCatalogue(), limit=10)

    assert isinstance(exc_info.value.original_exception, ConnectionError)
    assert await count(db_session, ImportLog) == 0


@pytest.mark.asyncio
async def test_catalogue_page_above_cap_is_rejected(db_session, fake_chemical, fake_generative):
    runner = EnrichmentRunner(db_session, fake_chemical, fake_generative, batch_limit=5)

    with pytest.raises(BatchLimitExceededError):
        await runner.run_from_catalogue(object(), limit=6)


@pytest.mark.asyncio
async def test_failed_audit_log_does_not_fail_the_run(db_session, fake_chemical, fake_generative, monkeypatch):
    """
    Test: the audit write is best-effort
    """

    async def broken_audit(self, *args, **kwargs):
        raise RuntimeError("import_logs is locked")

    monkeypatch.setattr(EnrichmentRunner, "_write_audit_log", broken_audit)

    runner = EnrichmentRunner(db_session, fake_chemical, fake_generative)
    response = await runner.run(make_items(2), skip_ai=True, skip_pubchem=True)

    assert response.summary.inserted == 2
    assert await count(db_session, Substance) == 2


@pytest.mark.asyncio
async def test_bulk_import_continues_after_failed_entry(db_session, monkeypatch):
    original_upsert = SubstanceWriter.upsert

    async def flaky_upsert(self, row, names=()):
        if row["slug"] == "lsd":
            raise UpsertError("INSERT failed for 'lsd'", context={"slug": "lsd"})
        return await original_upsert(self, row, names)

    monkeypatch.setattr(SubstanceWriter, "upsert", flaky_upsert)

    response = await BulkNameImporter(db_session).import_names(
        BulkImportRequest(names=["Koffein", "LSD", "Psilocybin"])
    )

    assert [r.status for r in response.results] == ["created", "failed", "created"]
    assert response.summary.failed == 1
    assert response.summary.created == 2
