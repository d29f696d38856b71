# tests/conftest.py
import random

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from watchsync.core.config import Settings, get_settings
from watchsync.database import Base
from watchsync.integrations.setup import get_orchestrator
from watchsync.main import app
from watchsync.models import MirrorListing, SyncCycle  # noqa: F401  registers tables
from watchsync.services.mirror_store import InMemoryMirrorStore, SqlMirrorStore
from watchsync.services.reconciliation.backoff import PacingPolicy, RetryPolicy
from watchsync.services.reconciliation.orchestrator import ChannelRuntime, ReconciliationOrchestrator

from tests.mocks.mock_channel import MockChannel, RecordingAlerts, StaticFeed

# In-memory SQLite keeps the SQL store tests self-contained
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings():
    """Provide test settings"""
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        EBAY_ACCESS_TOKEN="test_token",
        CATALOG_API_BASE_URL="https://catalog.test/api",
        CATALOG_API_KEY="test_key",
        BASIC_AUTH_USERNAME="admin",
        BASIC_AUTH_PASSWORD="secret",
        ENVIRONMENT="test",
    )


@pytest.fixture
async def test_engine():
    """Create and configure the test database engine (function-scoped)."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def sql_store(session_maker):
    return SqlMirrorStore(session_maker)


@pytest.fixture
def store():
    return InMemoryMirrorStore()


@pytest.fixture
def alerts():
    return RecordingAlerts()


@pytest.fixture
def sleeps():
    """Every delay the engine asked for, in order."""
    return []


@pytest.fixture
def sleeper(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
    return _sleep


@pytest.fixture
def channel():
    return MockChannel()


@pytest.fixture
def feed():
    return StaticFeed()


@pytest.fixture
def runtime(channel, feed):
    return ChannelRuntime(
        adapter=channel,
        feed=feed,
        max_destructive_per_cycle=5,
        retry_policy=RetryPolicy(max_attempts=3, min_delay=1.0, max_delay=2.0, rng=random.Random(7)),
        pacing=PacingPolicy(),
    )


@pytest.fixture
def orchestrator(store, alerts, sleeper, runtime):
    orch = ReconciliationOrchestrator(store=store, alerts=alerts, sleeper=sleeper)
    orch.register(runtime)
    return orch


@pytest.fixture
def test_client(settings, orchestrator):
    """Provide a test client with overridden settings and orchestrator"""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    # No context manager: the lifespan (scheduler, real orchestrator) stays off
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
