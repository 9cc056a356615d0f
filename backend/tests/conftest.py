"""Shared test fixtures for backend tests."""

import os
import tempfile
from typing import AsyncGenerator

# Must be set before qa_dashboard.config builds its settings object.
os.environ.setdefault("SCREENSHOTS_DIR", tempfile.mkdtemp(prefix="qa-screens-"))
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "0")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from qa_dashboard.api.deps import get_db, get_run_queue
from qa_dashboard.database import Base, build_sessionmaker
from qa_dashboard.main import app
from qa_dashboard.models import Device, Feature, Site

from fakes import FakeRunQueue

TEST_DATABASE_URL = "sqlite+aiosqlite://"


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_sessionmaker(engine)


@pytest.fixture
def run_queue() -> FakeRunQueue:
    return FakeRunQueue()


@pytest_asyncio.fixture
async def catalog(session_maker) -> dict:
    """Two sites, one device and three features (two with scripts)."""
    async with session_maker() as session:
        rows = {
            "senti": Site(name="senti.live"),
            "shorts": Site(name="shorts.senti.live"),
            "desktop": Device(name="Desktop"),
            "chat": Feature(name="Chat Functionality", kind="chat"),
            "scroll": Feature(name="Scrolling Home Page", kind="scroll_home"),
            "paywall": Feature(name="Paywall"),
        }
        session.add_all(rows.values())
        await session.commit()
        return {key: row.id for key, row in rows.items()}


@pytest_asyncio.fixture
async def client(session_maker, run_queue) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database and the in-memory queue."""
    async def _get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_run_queue] = lambda: run_queue
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
