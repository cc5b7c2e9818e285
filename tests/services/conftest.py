"""Service test fixtures - in-memory ledger, listing stores and the FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database and a fresh InMemoryLedger
    - Orchestrator tests run against FakeListingStore; route tests against SqlListingStore
    - get_db dependency overridden; db_manager patched for the readiness probe
    - app.state.ledger replaced per test: the lifespan never runs under ASGITransport

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for route tests
    - Fixed ledger clock: verification timestamps are predictable
"""

from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import propchain.infrastructure.database as db_module
from propchain.core.ledger_calls import OperationTable
from propchain.db.base import Base
from propchain.infrastructure.database import DatabaseSessionManager, get_db
from propchain.infrastructure.listing_store import SqlListingStore
from propchain.infrastructure.memory_ledger import DEFAULT_ADDRESSES, InMemoryLedger
from propchain.main import app
from propchain.models.property import Property
from propchain.services.context import LedgerContext
from propchain.services.escrow_orchestrator import EscrowOrchestrator
from propchain.services.registry_orchestrator import RegistryOrchestrator
from propchain.services.reputation_aggregator import ReputationAggregator
from tests.services.fakes import LEDGER_NOW, OWNER, FakeListingStore


# ─── Database ───────────────────────────────────────────────────

@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


# ─── Ledger + orchestrators ─────────────────────────────────────

@pytest.fixture
def ledger():
    return InMemoryLedger(clock=lambda: LEDGER_NOW)


@pytest.fixture
def store():
    return FakeListingStore()


@pytest.fixture
def ctx(ledger, store):
    return LedgerContext(
        gateway=ledger, listings=store, operations=OperationTable(DEFAULT_ADDRESSES),
    )


@pytest.fixture
def registry(ctx):
    return RegistryOrchestrator(ctx)


@pytest.fixture
def escrows(ctx):
    return EscrowOrchestrator(ctx)


@pytest.fixture
def reputation(ctx):
    return ReputationAggregator(ctx)


@pytest.fixture
def listing(store):
    """Unminted 15,000,000 house in Kololo."""
    return store.add()


@pytest.fixture
async def minted_listing(registry, listing):
    result = await registry.mint(listing.listing_id, OWNER)
    return result


# ─── HTTP client ────────────────────────────────────────────────

@pytest.fixture
def api_ledger():
    return InMemoryLedger(clock=lambda: LEDGER_NOW)


@pytest.fixture
async def client(test_engine, test_session_factory, api_ledger):
    """FastAPI test client with DB dependency and ledger context overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    # Patch db_manager for the readiness probe, which uses it directly
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    app.state.ledger = LedgerContext(
        gateway=api_ledger,
        listings=SqlListingStore(test_session_factory),
        operations=OperationTable(DEFAULT_ADDRESSES),
    )

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
    del app.state.ledger


@pytest.fixture
async def seed_property(test_db):
    """Insert an untokenized house listing into the test DB."""
    row = Property(
        title="Family House in Bugolobi",
        description="Spacious 4-bedroom family home.",
        location="Bugolobi, Kampala",
        type="house",
        purpose="sale",
        price=Decimal("15000000"),
        agent={"name": "Grace Nambi", "phone": "+256 700 345678", "email": "grace@realestate.ug"},
        amenities=["Garden", "Security"],
        region="Central",
        district="Kampala",
        area="Bugolobi",
    )
    test_db.add(row)
    await test_db.commit()
    await test_db.refresh(row)
    return row
