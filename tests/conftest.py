"""Shared test fixtures and configuration."""
import pytest
import os
from datetime import date
from unittest.mock import AsyncMock, Mock
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "ACtest")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-token")
os.environ.setdefault("DEEPGRAM_API_KEY", "test-deepgram")
os.environ.setdefault("ELEVENLABS_API_KEY", "test-elevenlabs")
os.environ.setdefault("ELEVENLABS_VOICE_ID", "test-voice")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from app.main import app
from app.db.models import Base, Restaurant
from app.core.cache import KeyValueCache
from app.core.dependencies import get_datastore
from app.services.persistence.datastore import Datastore
from app.services.persistence.models import AccessDecision, StoreResult, TenantSettings
from app.services.telephony.twilio import TelephonyResult


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# A Wednesday
TODAY = date(2025, 6, 11)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def restaurant(test_db):
    """A restaurant with capacity 20, closed on Mondays."""
    row = Restaurant(
        id="rest-1",
        name="Trattoria Roma",
        max_capacity=20,
        opening_time="17:00",
        closing_time="23:00",
        closed_days=["Montag"],
        phone_number="+4930111111",
        handoff_phone_number="+4930222222",
        subscription_status="active",
        calls_limit=100,
    )
    test_db.add(row)
    await test_db.commit()
    return row


@pytest.fixture
def tenant_cache():
    return KeyValueCache(name="test_tenants")


@pytest.fixture
def datastore(session_factory, tenant_cache):
    return Datastore(session_factory, tenant_cache)


@pytest.fixture
def tenant():
    """Tenant settings without a database behind them."""
    return TenantSettings(
        id="rest-1",
        name="Trattoria Roma",
        max_capacity=20,
        opening_time="17:00",
        closing_time="23:00",
        closed_days=frozenset({1}),
        subscription_status="active",
        calls_limit=100,
        handoff_numbers=["+4930222222", "+4930111111"],
    )


@pytest.fixture
def mock_datastore(tenant):
    """Datastore double returning successful results."""
    store = Mock()
    store.list_confirmed_reservations = AsyncMock(return_value=StoreResult.success([]))
    store.create_reservation = AsyncMock(return_value=StoreResult.success(42))
    store.create_call_log = AsyncMock(return_value=StoreResult.success(7))
    store.finalize_call_log = AsyncMock(return_value=StoreResult.success())
    store.add_transcript_entry = AsyncMock(return_value=StoreResult.success(1))
    store.check_access = AsyncMock(return_value=AccessDecision(allowed=True, settings=tenant, calls_count=3))
    return store


@pytest.fixture
def mock_telephony():
    telephony = Mock()
    telephony.transfer_call = AsyncMock(return_value=TelephonyResult(ok=True))
    telephony.hangup_call = AsyncMock(return_value=TelephonyResult(ok=True))
    return telephony


@pytest.fixture
def test_client(mock_datastore):
    """Create FastAPI test client with a datastore double."""
    app.dependency_overrides[get_datastore] = lambda: mock_datastore

    client = TestClient(app)

    yield client

    # Clear overrides
    app.dependency_overrides.clear()


@pytest.fixture
def clean_call_sessions():
    """Clean up call sessions before and after tests."""
    from app.services.call_session import manager
    manager._sessions.clear()
    yield
    manager._sessions.clear()
