"""Application context — the shared collaborators handed to every module.

Learn: Instead of modules importing globals, the lifespan builds one
AppContext and passes it to each module's initialize(). Route handlers
reach the same object through request.app.state.context.
"""

from dataclasses import dataclass
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from starlette.requests import Request

from ignitor.config import Settings
from ignitor.realtime.broadcaster import Broadcaster


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    broadcaster: Broadcaster
    logger: Any

    async def initialize(self) -> None:
        """Verify the database answers. Startup fails if it doesn't."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            self.logger.error("db.connect_failed", error=str(e))
            raise
        self.logger.info("db.connected")

    async def shutdown(self) -> None:
        await self.engine.dispose()
        self.logger.info("db.disconnected")


def get_context(request: Request) -> AppContext:
    """FastAPI dependency — the AppContext of the running app."""
    return request.app.state.context


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.context.broadcaster
