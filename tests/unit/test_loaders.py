"""
Unit tests for the substance writer (natural-key upsert)
"""

import pytest
from sqlalchemy import select, func
from core.exceptions import UpsertError
from ingestion.loaders.substance_writer import (
    ALIAS_DUPLICATE_MESSAGE,
    SubstanceWriter,
    WriteStatus,
    is_empty
)
from models.base import AliasType, SubstanceStatus
from models.substance import Substance, SubstanceAlias


def make_row(slug, name, **extra):
    row = {
        "slug": slug,
        "name": name,
        "canonical_name": name,
        "summary": "",
        "external_ids": {"wikidata": "Q1"},
        "enrichment": {},
        "meta": {"import_run_id": "run-1"},
    }
    row.update(extra)
    return row


async def count(db_session, model):
    result = await db_session.execute(select(func.count()).select_from(model))
    return result.scalar()


class TestIsEmpty:

    def test_empty_values(self):
        assert is_empty(None)
        assert is_empty("  ")
        assert is_empty([])
        assert is_empty({"positive": [], "notes": ""})

    def test_non_empty_values(self):
        assert not is_empty("x")
        assert not is_empty(["x"])
        assert not is_empty({"potential": "unknown"})
        assert not is_empty(0)


class TestSubstanceWriter:
    """Insert-or-update keyed by slug, canonical name and alias"""

    @pytest.mark.asyncio
    async def test_insert_creates_draft(self, db_session):
        writer = SubstanceWriter(db_session)
        result = await writer.upsert(make_row("koffein", "Koffein", wikidata_rank=7))

        assert result.status == WriteStatus.INSERTED
        assert result.substance_id is not None

        substance = await db_session.get(Substance, result.substance_id)
        assert substance.status == SubstanceStatus.DRAFT
        # Unknown keys end up in the overflow column
        assert substance.meta == {"import_run_id": "run-1", "wikidata_rank": 7}

    @pytest.mark.asyncio
    async def test_second_write_updates(self, db_session):
        writer = SubstanceWriter(db_session)
        first = await writer.upsert(make_row("koffein", "Koffein"))
        second = await writer.upsert(
            make_row("koffein", "Koffein", summary="Ein Alkaloid.", meta={"import_run_id": "run-2"})
        )

        assert second.status == WriteStatus.UPDATED
        assert second.matched_by == "slug"
        assert second.substance_id == first.substance_id
        assert await count(db_session, Substance) == 1

        substance = await db_session.get(Substance, first.substance_id)
        # Draft with empty summary: content is filled, meta is merged
        assert substance.summary == "Ein Alkaloid."
        assert substance.meta["import_run_id"] == "run-2"

    @pytest.mark.asyncio
    async def test_update_never_overwrites_curated_content(self, db_session):
        writer = SubstanceWriter(db_session)
        first = await writer.upsert(make_row("koffein", "Koffein", summary="Kuratiert."))

        substance = await db_session.get(Substance, first.substance_id)
        substance.status = SubstanceStatus.PUBLISHED
        await db_session.commit()

        await writer.upsert(
            make_row("koffein", "Koffein", summary="Neu generiert.", external_ids={"wikidata": "Q2"})
        )

        substance = await db_session.get(Substance, first.substance_id, populate_existing=True)
        assert substance.summary == "Kuratiert."
        assert substance.external_ids == {"wikidata": "Q2"}

    @pytest.mark.asyncio
    async def test_canonical_name_match_is_case_insensitive(self, db_session):
        writer = SubstanceWriter(db_session)
        first = await writer.upsert(make_row("koffein", "Koffein"))

        result = await writer.upsert(make_row("koffein-alt", "KOFFEIN"))

        assert result.status == WriteStatus.UPDATED
        assert result.matched_by == "canonical_name"
        assert result.slug == "koffein"
        assert result.substance_id == first.substance_id

    @pytest.mark.asyncio
    async def test_alias_match_is_skipped(self, db_session):
        writer = SubstanceWriter(db_session)
        first = await writer.upsert(make_row("koffein", "Koffein"))
        await writer.add_aliases(first.substance_id, [("Guaranine", AliasType.SYNONYM, "pubchem")])

        result = await writer.upsert(make_row("guaranine", "guaranine"))

        assert result.status == WriteStatus.SKIPPED
        assert result.matched_by == "alias"
        assert result.slug == "koffein"
        assert result.error == ALIAS_DUPLICATE_MESSAGE
        assert await count(db_session, Substance) == 1

    @pytest.mark.asyncio
    async def test_extra_names_are_checked_against_aliases(self, db_session):
        writer = SubstanceWriter(db_session)
        first = await writer.upsert(make_row("ketamin", "Ketamin"))
        await writer.add_aliases(first.substance_id, [("Special K", AliasType.SYNONYM, "csv_import")])

        result = await writer.upsert(make_row("special", "Special"), names=["special k"])

        assert result.status == WriteStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_failed_write_rolls_back_and_raises(self, db_session):
        writer = SubstanceWriter(db_session)

        with pytest.raises(UpsertError) as exc_info:
            await writer.upsert({"slug": "ohne-name", "canonical_name": ""})

        assert exc_info.value.context["operation"] == "INSERT"
        assert exc_info.value.context["slug"] == "ohne-name"

        # The session is usable again for the next item
        result = await writer.upsert(make_row("koffein", "Koffein"))
        assert result.status == WriteStatus.INSERTED
        assert await count(db_session, Substance) == 1

    @pytest.mark.asyncio
    async def test_add_aliases_ignores_duplicates(self, db_session):
        writer = SubstanceWriter(db_session)
        first = await writer.upsert(make_row("koffein", "Koffein"))

        aliases = [
            ("Guaranine", AliasType.SYNONYM, "pubchem"),
            ("Guaranine", AliasType.SYNONYM, "pubchem"),
            ("", AliasType.SYNONYM, "pubchem"),
            ("1,3,7-trimethylpurine-2,6-dione", AliasType.IUPAC, "pubchem"),
        ]
        assert await writer.add_aliases(first.substance_id, aliases) == 2
        # Second submission hits the unique constraint and is ignored
        await writer.add_aliases(first.substance_id, aliases)

        assert await count(db_session, SubstanceAlias) == 2
