"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (database, Redis, modules,
the SSE sweeper). Middleware, CORS, error handlers and routers are all
registered here; each concern lives in its own module.

Startup order:
  logging → Redis (optional) → database check → modules → SSE sweeper
Shutdown runs the same list backwards.
"""

from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ignitor import __version__
from ignitor.api import api_router
from ignitor.api.health import router as health_router
from ignitor.config import Settings
from ignitor.config import settings as default_settings
from ignitor.context import AppContext
from ignitor.errors import register_exception_handlers
from ignitor.log import configure_logging, get_logger
from ignitor.modules import IgnitorModule, ModuleRegistry, default_modules
from ignitor.realtime.broadcaster import Broadcaster


def _build_context(cfg: Settings) -> AppContext:
    from ignitor.db import engine as db_engine

    if cfg is default_settings:
        engine = db_engine.engine
        session_factory = db_engine.async_session_factory
    else:
        engine = db_engine.build_engine(cfg)
        session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
    logger = get_logger("ignitor")
    return AppContext(
        settings=cfg,
        engine=engine,
        session_factory=session_factory,
        broadcaster=Broadcaster(logger=get_logger("ignitor.realtime")),
        logger=logger,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. Redis is optional; the database is not.
    """
    ctx: AppContext = app.state.context
    modules: ModuleRegistry = app.state.modules
    cfg = ctx.settings

    configure_logging(cfg)
    ctx.logger.info(
        "ignitor.starting",
        version=__version__,
        environment=cfg.environment,
        port=cfg.port,
        modules=modules.names(),
    )

    from ignitor.redis_client import close_redis, init_redis

    try:
        await init_redis(cfg.redis_url)
        ctx.logger.info("ignitor.redis_connected", url=cfg.redis_url)
    except Exception as e:
        # Redis is optional — only rate limiting needs it
        ctx.logger.warning("ignitor.redis_unavailable", error=str(e))

    await ctx.initialize()
    await modules.initialize_all(ctx)
    ctx.broadcaster.start(cfg.sse_sweep_interval_seconds)
    ctx.logger.info("ignitor.started")

    yield

    ctx.logger.info("ignitor.shutdown")
    await ctx.broadcaster.stop()
    await modules.shutdown_all(ctx.logger)
    await close_redis()
    await ctx.shutdown()
    ctx.logger.info("ignitor.shutdown_complete")


def create_app(
    settings: Optional[Settings] = None,
    modules: Optional[Sequence[IgnitorModule]] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    cfg = settings or default_settings
    registry = ModuleRegistry(default_modules() if modules is None else modules)

    app = FastAPI(
        title="Ignitor",
        description="Backend application scaffold",
        version=__version__,
        lifespan=lifespan,
        debug=cfg.debug,
    )
    app.state.context = _build_context(cfg)
    app.state.modules = registry

    # ── Middleware stack ──────────────────────────────────────
    # Starlette runs middleware in reverse order of registration.
    # Request flow: RequestId → RequestLogging → Security → RateLimit → CORS → handler

    from ignitor.middleware.rate_limit import RateLimitMiddleware
    from ignitor.middleware.request_id import RequestIdMiddleware
    from ignitor.middleware.request_logger import RequestLoggingMiddleware
    from ignitor.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    if cfg.rate_limit_active:
        app.add_middleware(
            RateLimitMiddleware,
            max_requests=cfg.rate_limit_max,
            window_seconds=cfg.rate_limit_window_seconds,
        )
    app.add_middleware(SecurityHeadersMiddleware, production=cfg.is_production)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app, production=cfg.is_production)

    # Root health check for load balancers, plus the versioned API
    app.include_router(health_router, tags=["health"])
    app.include_router(api_router)
    for module in registry:
        if module.router is not None:
            app.include_router(module.router, prefix="/api/v1", tags=[module.name])

    return app


# Default app instance (used by uvicorn: ignitor.main:app)
app = create_app()
