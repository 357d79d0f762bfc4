"""
TeamHub API Server

Entry point for the FastAPI application.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from teamhub_api.api.v1 import router as api_v1_router
from teamhub_api.api.v1.realtime import router as realtime_router
from teamhub_api.core.config import get_settings
from teamhub_api.core.database import get_session_context
from teamhub_api.core.errors import register_exception_handlers
from teamhub_api.core.logging import configure_logging
from teamhub_api.core.middleware import SecurityHeadersMiddleware
from teamhub_api.core.redis import close_redis, get_redis
from teamhub_shared.schemas.common import ok

settings = get_settings()
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    log.info("teamhub.starting", broker=settings.realtime_broker, debug=settings.debug)
    yield
    log.info("teamhub.stopping")
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="TeamHub",
        description="Multi-tenant team collaboration API with realtime chat.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Middleware (order matters: last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_exception_handlers(app)

    # REST API
    app.include_router(api_v1_router, prefix="/api/v1")

    # Realtime gateway (WS /chat)
    app.include_router(realtime_router, tags=["Realtime"])

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness probe."""
        return ok({"status": "ok"})

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness probe: the database must answer, and Redis too when it is the broker."""
        checks = {"database": "ok"}
        async with get_session_context() as session:
            await session.execute(text("SELECT 1"))
        if settings.realtime_broker == "redis":
            redis = await get_redis()
            await redis.ping()
            checks["redis"] = "ok"
        return ok({"status": "ready", "checks": checks})

    return app


app = create_app()
