"""API route aggregation.

Core routers registered here get mounted in main.py under /api/v1.
Feature modules (ignitor.modules) bring their own routers, which
create_app() mounts under the same prefix.
"""

from fastapi import APIRouter

from ignitor.api.health import router as health_router
from ignitor.api.realtime import router as realtime_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(realtime_router, tags=["realtime"])
