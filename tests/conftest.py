import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Ensure project root is on sys.path so `import app` works when running pytest from root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Force test settings before any app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENV"] = "development"
os.environ["EXPLORER_CLIENT"] = "mock"
os.environ["SCHEDULER_ENABLED"] = "false"

import app.db.base  # noqa: E402
from app.api.security import public_rate_limiter  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.explorer.clients.arbiscan import circuit_breaker, usage_tracker  # noqa: E402
from app.payouts.metrics import sync_metrics  # noqa: E402


@pytest_asyncio.fixture(autouse=True)
async def test_db(monkeypatch):
    """
    Provide a fresh in-memory database for each test.

    The engine uses a StaticPool so every session sees the same SQLite
    connection, and app.db.base is patched so UnitOfWork() and get_db use it.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(app.db.base, "engine", engine)
    monkeypatch.setattr(app.db.base, "AsyncSessionLocal", session_factory)

    yield session_factory

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_db):
    """Get a database session for a test."""
    async with test_db() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def reset_process_state():
    """Clear process-wide rate limit, metrics and explorer state between tests."""
    public_rate_limiter.reset()
    sync_metrics.clear_history()
    circuit_breaker.reset()
    usage_tracker.reset()
    yield
    public_rate_limiter.reset()
    sync_metrics.clear_history()
    circuit_breaker.reset()
    usage_tracker.reset()
