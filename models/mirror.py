from sqlalchemy import Column, String, DateTime
from datetime import datetime
from models.base import Base, BigIntPK, JSONType


class MirroredSubstance(Base):
    """
    Derived store fed by the sync consumer.

    source_updated_at holds the upstream updated_at of the copy we hold and
    drives the version check: an incoming record is applied only when it is
    strictly newer.
    """
    __tablename__ = "mirror_substances"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    source_id = Column(String(255), nullable=False)
    name = Column(String(500), nullable=False, default="")
    payload = Column(JSONType, nullable=False, default=dict)
    source_updated_at = Column(DateTime, nullable=False, index=True)
    synced_at = Column(DateTime, nullable=False, default=datetime.utcnow)
