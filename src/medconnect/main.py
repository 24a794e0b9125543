"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, the token cleanup
worker, the database engine). Middleware, CORS, exception handlers and
routers are all registered here.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from medconnect import __version__
from medconnect.api import api_router
from medconnect.api.errors import register_exception_handlers
from medconnect.config import settings

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    logger.info(
        "medconnect.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from medconnect.cache import close_redis, init_redis

    if settings.rate_limit_backend == "redis":
        try:
            await init_redis()
            logger.info("medconnect.redis_connected")
        except Exception as e:
            # Falls back to per-process counters.
            await close_redis()
            logger.warning("medconnect.redis_unavailable", error=str(e))

    from medconnect.db.engine import async_session_factory, engine
    from medconnect.services.token_cleanup import TokenCleanupWorker

    cleanup_worker = None
    cleanup_task = None
    if settings.token_cleanup_interval_seconds > 0:
        cleanup_worker = TokenCleanupWorker(
            async_session_factory,
            interval=settings.token_cleanup_interval_seconds,
        )
        cleanup_task = asyncio.create_task(cleanup_worker.run_loop())

    yield

    logger.info("medconnect.shutdown")

    if cleanup_worker is not None:
        cleanup_worker.stop()
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass

    await close_redis()
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="MedConnect API",
        description="Healthcare appointment brokering backend: agent accounts and sessions",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → CORS → handler

    from medconnect.middleware.request_id import RequestIdMiddleware
    from medconnect.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: medconnect.main:app)
app = create_app()
