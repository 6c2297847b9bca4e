"""
Idempotent natural-key upsert of substance records
"""

from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from enum import Enum
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from models.substance import Substance, SubstanceAlias
from models.base import SubstanceStatus, AliasType
from ingestion.sanitizer import sanitize_payload
from core.database import dialect_insert
from core.effects import best_effort
from core.exceptions import UpsertError
import logging

logger = logging.getLogger(__name__)

# Fields every re-import may refresh
ENRICHMENT_FIELDS = ("external_ids", "enrichment", "meta", "confidence")

# Curator-owned fields; only filled while a record is a draft and the field is empty
CONTENT_FIELDS = (
    "categories", "summary", "mechanism", "effects", "risks", "interactions",
    "dependence", "legality", "citations", "tags", "related_slugs",
)

ALIAS_DUPLICATE_MESSAGE = "Alias already exists"


class WriteStatus(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"


class WriteResult(BaseModel):
    status: WriteStatus
    slug: str
    substance_id: Optional[int] = None
    matched_by: Optional[str] = None
    error: Optional[str] = None


def is_empty(value: Any) -> bool:
    """True for None, empty strings/collections and dicts holding only empty values."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, dict):
        return all(is_empty(v) for v in value.values())
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


class SubstanceWriter:
    """
    Insert-or-update substances keyed by natural key.

    Ensures:
    - Resolution order: slug, then canonical name, then alias (case-insensitive)
    - An alias hit is reported as a skipped duplicate, never a new record
    - Existing records only get enrichment fields refreshed; curator content
      is never overwritten
    - Each write is committed on its own; a failure rolls back that write only
    """

    def __init__(self, db_session: AsyncSession, allowed_columns: Optional[Set[str]] = None):
        self.db = db_session
        self.allowed_columns = allowed_columns or set(Substance.__table__.columns.keys())

    async def resolve_existing(
        self,
        slug: str,
        canonical_name: str,
        names: Iterable[str] = ()
    ) -> Tuple[Optional[Substance], Optional[str]]:
        """
        Find the record an incoming item refers to.

        Returns:
            (substance, matched_by) where matched_by is "slug",
            "canonical_name", "alias" or None
        """
        result = await self.db.execute(select(Substance).where(Substance.slug == slug))
        substance = result.scalar_one_or_none()
        if substance is not None:
            return substance, "slug"

        if canonical_name:
            result = await self.db.execute(
                select(Substance)
                .where(func.lower(Substance.canonical_name) == canonical_name.lower())
                .order_by(Substance.id)
                .limit(1)
            )
            substance = result.scalar_one_or_none()
            if substance is not None:
                return substance, "canonical_name"

        lowered = sorted({n.strip().lower() for n in [canonical_name, *names] if n and n.strip()})
        if lowered:
            # Several aliases may point at different records: oldest alias wins
            result = await self.db.execute(
                select(SubstanceAlias)
                .where(func.lower(SubstanceAlias.alias).in_(lowered))
                .order_by(SubstanceAlias.created_at, SubstanceAlias.id)
                .limit(1)
            )
            alias = result.scalar_one_or_none()
            if alias is not None:
                substance = await self.db.get(Substance, alias.substance_id)
                if substance is not None:
                    return substance, "alias"

        return None, None

    async def upsert(self, row: Dict[str, Any], names: Iterable[str] = ()) -> WriteResult:
        """
        Write one substance row.

        Args:
            row: Full draft row (slug, name, canonical_name, content and enrichment fields)
            names: Extra names to check against the alias table

        Returns:
            WriteResult (inserted, updated, or skipped on alias match)

        Raises:
            UpsertError: when the write fails; the session is rolled back first
        """
        slug = row["slug"]
        operation = "SELECT"

        try:
            existing, matched_by = await self.resolve_existing(
                slug, row.get("canonical_name", ""), [row.get("name", ""), *names]
            )

            if matched_by == "alias":
                logger.info(f"'{slug}' is a known alias of '{existing.slug}', skipping")
                return WriteResult(
                    status=WriteStatus.SKIPPED,
                    slug=existing.slug,
                    substance_id=existing.id,
                    matched_by=matched_by,
                    error=ALIAS_DUPLICATE_MESSAGE
                )

            if existing is not None:
                operation = "UPDATE"
                self._apply_update(existing, row)
                await self.db.commit()
                logger.debug(f"Updated substance '{existing.slug}' (matched by {matched_by})")
                return WriteResult(
                    status=WriteStatus.UPDATED,
                    slug=existing.slug,
                    substance_id=existing.id,
                    matched_by=matched_by
                )

            operation = "INSERT"
            values = sanitize_payload(row, self.allowed_columns)
            values["status"] = SubstanceStatus.DRAFT
            substance = Substance(**values)
            self.db.add(substance)
            await self.db.commit()
            logger.debug(f"Inserted substance '{slug}' (id={substance.id})")
            return WriteResult(status=WriteStatus.INSERTED, slug=slug, substance_id=substance.id)

        except Exception as e:
            await self.db.rollback()
            raise UpsertError(
                f"{operation} failed for '{slug}': {e}",
                context={"slug": slug, "operation": operation, "table_name": "substances"},
                original_exception=e
            )

    def _apply_update(self, substance: Substance, row: Dict[str, Any]):
        values = sanitize_payload(row, self.allowed_columns)

        for field in ENRICHMENT_FIELDS:
            if field not in values:
                continue
            if field == "meta":
                merged = dict(substance.meta or {})
                merged.update(values["meta"] or {})
                substance.meta = merged
            else:
                setattr(substance, field, values[field])

        if substance.status != SubstanceStatus.DRAFT:
            return

        for field in CONTENT_FIELDS:
            if field in values and is_empty(getattr(substance, field)) and not is_empty(values[field]):
                setattr(substance, field, values[field])

    async def refresh_enrichment(self, substance: Substance, row: Dict[str, Any]) -> WriteResult:
        """
        Apply a follow-up enrichment to a known record.

        Same field rules as an update through upsert().

        Raises:
            UpsertError: when the write fails; the session is rolled back first
        """
        slug = substance.slug
        try:
            self._apply_update(substance, row)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            raise UpsertError(
                f"UPDATE failed for '{slug}': {e}",
                context={"slug": slug, "operation": "UPDATE", "table_name": "substances"},
                original_exception=e
            )

        return WriteResult(status=WriteStatus.UPDATED, slug=slug, substance_id=substance.id, matched_by="id")

    async def add_aliases(
        self,
        substance_id: int,
        aliases: Iterable[Tuple[str, AliasType, str]]
    ) -> int:
        """
        Attach alias rows to a substance; duplicates are ignored.

        Best-effort: a failure is logged and yields 0.

        Args:
            substance_id: Target substance
            aliases: (alias, alias_type, source) tuples

        Returns:
            Number of alias rows submitted
        """
        rows: List[Dict[str, Any]] = []
        seen = set()
        for alias, alias_type, source in aliases:
            alias = (alias or "").strip()
            if not alias or alias in seen:
                continue
            seen.add(alias)
            rows.append({
                "substance_id": substance_id,
                "alias": alias,
                "alias_type": alias_type,
                "source": source
            })

        if not rows:
            return 0

        async def insert_aliases():
            stmt = dialect_insert(self.db, SubstanceAlias).values(rows)
            stmt = stmt.on_conflict_do_nothing(index_elements=["alias", "substance_id"])
            await self.db.execute(stmt)
            await self.db.commit()
            return len(rows)

        inserted = await best_effort("alias_insert", insert_aliases, session=self.db)
        return inserted or 0
