"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: The general rate limit is applied at the include_router level
using FastAPI's dependencies parameter, so every /api/v1 route counts
against it without touching individual handlers. Authentication is
declared per route (some auth routes are public).
"""

from fastapi import APIRouter, Depends

from medconnect.api.agents import router as agents_router
from medconnect.api.auth import router as auth_router
from medconnect.api.health import router as health_router
from medconnect.auth.rate_limit import rate_limit
from medconnect.config import settings

_limit = [
    Depends(
        rate_limit(
            settings.rate_limit_window_ms,
            settings.rate_limit_max_requests,
            scope="api",
        )
    )
]

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"], dependencies=_limit)
api_router.include_router(agents_router, tags=["agents"], dependencies=_limit)
