"""
Allowlist filtering of write payloads against the live ``substances`` columns.

Keys the table does not know are kept in the ``meta`` overflow column so
that schema drift never loses data and never breaks a write.
"""

from typing import Dict, Any, Set, Tuple
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from models.substance import Substance

logger = logging.getLogger(__name__)

OVERFLOW_FIELD = "meta"


def split_payload(payload: Dict[str, Any], allowed: Set[str]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Partition payload keys into (known columns, everything else)."""
    known = {}
    overflow = {}
    for key, value in payload.items():
        if key in allowed:
            known[key] = value
        else:
            overflow[key] = value
    return known, overflow


def sanitize_payload(payload: Dict[str, Any], allowed: Set[str]) -> Dict[str, Any]:
    """
    Return a payload containing only allowed columns.

    Unknown keys are merged into the overflow column on top of whatever the
    payload already carried there (unknown keys win on collision).
    """
    known, overflow = split_payload(payload, allowed)
    if not overflow:
        return known

    if OVERFLOW_FIELD not in allowed:
        logger.warning(f"Dropping unknown fields, no overflow column available: {sorted(overflow)}")
        return known

    existing = known.get(OVERFLOW_FIELD)
    merged = dict(existing) if isinstance(existing, dict) else {}
    merged.update(overflow)
    known[OVERFLOW_FIELD] = merged
    return known


class SchemaColumnIntrospector:
    """Reads the column names of a table from the connected database."""

    def __init__(self, db_session: AsyncSession, table_name: str = "substances"):
        self.db = db_session
        self.table_name = table_name

    async def get_allowed_columns(self) -> Set[str]:
        """
        Reflect the table's columns; fall back to the ORM definition when
        reflection fails or returns nothing.
        """
        try:
            conn = await self.db.connection()
            columns = await conn.run_sync(
                lambda sync_conn: inspect(sync_conn).get_columns(self.table_name)
            )
            names = {column["name"] for column in columns}
            if names:
                return names
            logger.warning(f"No columns reflected for {self.table_name}, using ORM columns")
        except Exception as e:
            logger.warning(f"Column reflection failed for {self.table_name}: {e}")

        return set(Substance.__table__.columns.keys())
