"""
Centralized Test Configuration.
"""

import pytest
from datetime import date
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.domain.ledger.entry_store import AdvanceStore
from backend.app.models.ledger_enums import EntryKind
from backend.app.schemas.advance import AdvanceCreate
from backend.app.transport.http import HttpLedgerTransport
from backend.app.transport.local import LocalLedgerTransport

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Apply overrides once for the session."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield

    app.dependency_overrides = {}

@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session

@pytest.fixture
def local_transport():
    return LocalLedgerTransport(session_factory=TestingSessionLocal)

@pytest.fixture
async def http_transport():
    """HTTP transport talking to the app in-process."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test/v1") as ac:
        yield HttpLedgerTransport(client=ac)


@pytest.fixture
def make_advance(db_session):
    """Factory committing an advance through the entry store."""

    async def _make_advance(kind=EntryKind.CLIENT_RETAINER, amount="1000.00", **fields):
        if kind is EntryKind.LAWYER_ADVANCE:
            fields.setdefault("lawyer_id", 7)
        else:
            fields.setdefault("client_id", 1)
        fields.setdefault("date_received", date(2024, 1, 15))

        entry = await AdvanceStore.create(
            db_session, AdvanceCreate(kind=kind, amount=Decimal(amount), **fields)
        )
        await db_session.commit()
        return entry

    return _make_advance
