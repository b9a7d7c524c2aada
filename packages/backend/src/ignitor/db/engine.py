"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.

The default engine is built from settings at import time; nothing connects until
the first query. Pool sizing only applies to server databases — SQLite
(used by the test suite) brings its own pool.
"""

from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ignitor.config import Settings, settings


def build_engine(cfg: Settings) -> AsyncEngine:
    kwargs = {"echo": cfg.debug, "pool_pre_ping": True}
    if not cfg.database_url.startswith("sqlite"):
        kwargs.update(pool_size=cfg.db_pool_size, max_overflow=cfg.db_max_overflow)
    return create_async_engine(cfg.database_url, **kwargs)


engine = build_engine(settings)

# Session factory — each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency — a session per request from the app's own factory.

    create_app(settings) may point at a different database than the module
    defaults above, so the factory comes from request.app.state.context.
    """
    async with request.app.state.context.session_factory() as session:
        yield session
