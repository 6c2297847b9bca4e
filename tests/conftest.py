"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from models.base import Base
# Import all models so their tables are registered on Base.metadata
from models import substance, import_log, checkpoint, sync_run, mirror  # noqa: F401
from schemas.imports import (
    CandidateItem,
    ChemicalFacts,
    ChemicalLookupResult,
    GenerativeEnrichment,
    GenerativeResult,
    GenerativeStatus,
    LookupStatus
)
from typing import AsyncGenerator, Dict, List, Optional

# In-memory SQLite; StaticPool keeps a single connection so every session sees the same DB
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Provider fakes
# ============================================================================

class FakeChemicalConnector:
    """Returns canned lookup results keyed by label; records every call"""

    def __init__(self, results: Optional[Dict[str, ChemicalLookupResult]] = None, default=None):
        self.results = results or {}
        self.default = default or ChemicalLookupResult(status=LookupStatus.NOT_FOUND)
        self.calls: List[str] = []

    async def fetch(self, label, ref_id=None):
        self.calls.append(label)
        return self.results.get(label, self.default)


class FakeGenerativeEnricher:
    """Returns a canned generative result; records every call"""

    def __init__(self, result: Optional[GenerativeResult] = None):
        self.result = result or GenerativeResult(status=GenerativeStatus.SKIPPED)
        self.calls: List[str] = []

    async def enrich(self, name, description="", context=None):
        self.calls.append(name)
        return self.result


@pytest.fixture
def fake_chemical():
    return FakeChemicalConnector()


@pytest.fixture
def fake_generative():
    return FakeGenerativeEnricher()


@pytest.fixture
def caffeine_facts():
    """PubChem facts for caffeine"""
    return ChemicalFacts(
        cid=2519,
        iupac_name="1,3,7-trimethylpurine-2,6-dione",
        molecular_formula="C8H10N4O2",
        molecular_weight=194.19,
        synonyms=["caffeine", "Guaranine", "Methyltheobromine"]
    )


@pytest.fixture
def generative_payload():
    """Valid generative answer with clean, neutral text"""
    return {
        "overview": "Koffein ist ein Alkaloid aus der Gruppe der Xanthine.",
        "effects": "Anregend auf das zentrale Nervensystem.",
        "risks": "Unruhe und Schlafstörungen sind möglich.",
        "harm_reduction": "Auf Pausen und ausreichend Schlaf achten.",
        "interactions": "Verstärkt die Wirkung anderer Stimulanzien.",
        "dosage_notes": "Empfindlichkeit ist individuell verschieden.",
        "legal_status_notes": "In Deutschland frei verkäuflich.",
        "sources": ["PubChem"]
    }


@pytest.fixture
def generative_ok(generative_payload):
    return GenerativeResult(status=GenerativeStatus.OK, data=GenerativeEnrichment(**generative_payload))


@pytest.fixture
def sample_items():
    """Catalogue items as the Wikidata listing would produce them"""
    return [
        CandidateItem(qid="Q60235", label="Koffein", description="Alkaloid", pubchem_cid=2519),
        CandidateItem(qid="Q407217", label="Kratom", description="Pflanze aus Südostasien"),
        CandidateItem(qid="Q18216", label="Aspirin"),
    ]


@pytest.fixture
def chemical_factory():
    """FakeChemicalConnector class, for tests that need canned results"""
    return FakeChemicalConnector


@pytest.fixture
def generative_factory():
    """FakeGenerativeEnricher class, for tests that need a canned result"""
    return FakeGenerativeEnricher
