"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for settings validation
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("RPC_URL", "http://localhost:8545")
os.environ.setdefault("WS_URL", "ws://localhost:8546")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("HEALTH_CHECK_PORT", "0")
os.environ.setdefault("RUN_WORKERS", "false")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from escrow_indexer.config.database import create_session_maker
from escrow_indexer.models import Base
from escrow_indexer.services.event_classifier import EventRegistry
from tests.fakes import FakeChain


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    """Session maker bound to the in-memory engine."""
    return create_session_maker(db_engine)


@pytest.fixture
def mock_session():
    """Mock AsyncSession for tests without a database."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def fake_chain():
    """Scriptable in-memory chain."""
    return FakeChain()


@pytest.fixture
def registry():
    """Default escrow event registry."""
    return EventRegistry()


@pytest.fixture
def sent_messages():
    """Collects messages passed to the queue send function."""
    return []


@pytest.fixture
def send(sent_messages):
    """Queue send function recording every message."""
    return sent_messages.append
