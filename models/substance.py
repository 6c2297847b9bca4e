from sqlalchemy import Column, String, Enum, Text, DateTime, ForeignKey, Index, UniqueConstraint, Float
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base, BigIntPK, JSONType, SubstanceStatus, AliasType


class Substance(Base):
    """
    Canonical substance record.

    Field groups:
    - Identity: slug (natural key), name, canonical_name
    - Curated content: categories, summary, mechanism, effects, risks,
      interactions, dependence, legality, citations
    - Enrichment-only: external_ids, enrichment, meta, confidence
    - Overflow: meta collects payload keys that have no column

    Re-imports only touch the enrichment-only group once a record has left
    the draft state.
    """
    __tablename__ = "substances"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    uuid = Column(String(36), default=lambda: str(uuid.uuid4()), unique=True, nullable=False, index=True)

    # Identity
    slug = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(500), nullable=False)
    canonical_name = Column(String(500), nullable=False, default="", index=True)

    # Curated content
    categories = Column(JSONType, nullable=False, default=list)
    summary = Column(Text, nullable=False, default="")
    mechanism = Column(Text, nullable=False, default="")
    effects = Column(JSONType, nullable=False, default=dict)
    risks = Column(JSONType, nullable=False, default=dict)
    interactions = Column(JSONType, nullable=False, default=dict)
    dependence = Column(JSONType, nullable=False, default=dict)
    legality = Column(JSONType, nullable=False, default=dict)
    citations = Column(JSONType, nullable=False, default=dict)
    tags = Column(JSONType, nullable=False, default=list)
    related_slugs = Column(JSONType, nullable=False, default=list)

    # Enrichment-only
    confidence = Column(JSONType, nullable=False, default=dict)
    external_ids = Column(JSONType, nullable=False, default=dict)
    enrichment = Column(JSONType, nullable=False, default=dict)
    meta = Column(JSONType, nullable=False, default=dict)

    status = Column(Enum(SubstanceStatus), default=SubstanceStatus.DRAFT, nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)

    aliases = relationship("SubstanceAlias", back_populates="substance", cascade="all, delete-orphan")
    sources = relationship("SubstanceSource", back_populates="substance", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_substances_status_updated", "status", "updated_at"),
    )


class SubstanceAlias(Base):
    """Alternate names used for natural-key deduplication."""
    __tablename__ = "substance_aliases"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    substance_id = Column(BigIntPK, ForeignKey("substances.id", ondelete="CASCADE"), nullable=False, index=True)
    alias = Column(String(500), nullable=False, index=True)
    alias_type = Column(Enum(AliasType), default=AliasType.SYNONYM, nullable=False)
    source = Column(String(100), nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    substance = relationship("Substance", back_populates="aliases")

    __table_args__ = (
        UniqueConstraint("alias", "substance_id", name="uq_substance_alias"),
    )


class SubstanceSource(Base):
    """Reference URL for a substance (no scraped content, URL + metadata only)."""
    __tablename__ = "substance_sources"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    substance_id = Column(BigIntPK, ForeignKey("substances.id", ondelete="CASCADE"), nullable=False, index=True)
    source_name = Column(String(500), nullable=False)
    source_url = Column(String(2048), nullable=False)
    source_type = Column(String(50), nullable=False)
    license_note = Column(Text, nullable=False, default="")
    confidence = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    substance = relationship("Substance", back_populates="sources")
