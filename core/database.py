"""
Database engine, session factory and dialect helpers (SQLAlchemy async)
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from sqlalchemy.dialects import postgresql, sqlite
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> AsyncEngine:
    """Async engine without pooling; every session opens its own connection."""
    return create_async_engine(
        database_url,
        echo=settings.LOG_LEVEL.upper() == "DEBUG",
        poolclass=NullPool,
        future=True
    )


engine = build_engine(settings.DATABASE_URL)

# Session factory; objects stay readable after commit
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


async def create_all_tables(target: AsyncEngine = None):
    """Create every table registered on the declarative base."""
    from models.base import Base
    # Register all models on Base.metadata
    from models import substance, import_log, checkpoint, sync_run, mirror  # noqa: F401

    target = target or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


def dialect_insert(session: AsyncSession, model):
    """
    Return an INSERT construct that supports ON CONFLICT for the session's dialect.

    PostgreSQL is the production store; SQLite backs the test suite.
    """
    dialect_name = session.get_bind().dialect.name
    if dialect_name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)
