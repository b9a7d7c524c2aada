"""Test fixtures — a fresh in-memory SQLite database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own engine on sqlite+aiosqlite ":memory:" with a
   StaticPool, so every session in the test sees the same database.
2. Tables are created from Base.metadata, then dropped with the engine.
3. The `client` fixture overrides get_db so routes use that session, and
   swaps in a fresh Broadcaster so subscribers never leak between tests.

No Postgres or Redis needed: rate limiting skips itself without Redis.
"""

import os

os.environ.setdefault("IGNITOR_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("IGNITOR_ENVIRONMENT", "test")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from ignitor.db.engine import get_db
from ignitor.db.models import Base
from ignitor.main import app
from ignitor.modules.posts.models import Post
from ignitor.realtime import Broadcaster
from ignitor.services.base import DataService, ServiceOptions
from ignitor.services.store import SQLAlchemyStore

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(db_engine):
    session = AsyncSession(bind=db_engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def make_service(db_session, broadcaster):
    """Build a DataService over the posts table with the given options."""

    def _make(**options) -> DataService:
        return DataService(
            SQLAlchemyStore(db_session, Post),
            "Post",
            ServiceOptions(**options),
            broadcaster=broadcaster,
            expose_error_details=True,
        )

    return _make


@pytest_asyncio.fixture()
async def client(db_session, broadcaster):
    """HTTP client with the app's get_db and broadcaster overridden for testing."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    original = app.state.context.broadcaster
    app.state.context.broadcaster = broadcaster

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.context.broadcaster = original
    app.dependency_overrides.clear()


class RecordingHandle:
    """Stream handle that keeps every frame it is sent."""

    def __init__(self, closed: bool = False, fail: bool = False):
        self.frames: list[str] = []
        self._closed = closed
        self.fail = fail

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    async def write(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.frames.append(data)


@pytest.fixture
def handle_factory():
    return RecordingHandle
