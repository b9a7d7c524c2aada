"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and the
database answers a trivial round trip. Served at /health (load balancers)
and /api/v1/health. An unreachable database turns it into a 503.
"""

import resource
import sys
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ignitor import __version__
from ignitor.context import AppContext, get_context
from ignitor.db.engine import get_db
from ignitor.errors import ServiceUnavailableError

router = APIRouter()

_STARTED = time.monotonic()


def format_uptime(seconds: float) -> str:
    seconds = int(seconds)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    return f"{days}d {hours}h {minutes}m {seconds}s"


def _peak_rss_mb() -> str:
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # Linux reports KiB, macOS bytes
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return f"{peak / divisor:.2f} MB"


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    """Check server health and database connectivity."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        raise ServiceUnavailableError(
            "Service unhealthy",
            details={"reason": "Database connection failed", "error": str(e)},
        )

    return {
        "status": "healthy",
        "server": "ok",
        "database": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": format_uptime(time.monotonic() - _STARTED),
        "environment": ctx.settings.environment,
        "version": __version__,
        "memory": {"peak_rss": _peak_rss_mb()},
        "realtime": ctx.broadcaster.stats(),
    }
