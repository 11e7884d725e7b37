"""FastAPI application entry point."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.api.v1.router import api_router
from app.auth.errors import KeyLoadFailure
from app.config import get_settings
from app.dependencies import create_redis, create_token_engine
from app.rate_limit import limiter
from app.security.middleware import (
    IPStatusMiddleware,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
)
from app.utils.logging import setup_logging

logger = logging.getLogger(__name__)

SERVICE_NAME = "token-service"
SERVICE_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager: owns all shared resources."""
    settings = get_settings()
    # Startup
    logger.info("Starting Token Service...")
    logger.info("Environment: %s", settings.environment)
    logger.info("Token expiry: %ss (leeway %ss)", settings.token_expiry, settings.token_leeway_seconds)

    redis = create_redis(settings)
    try:
        app.state.token_engine = create_token_engine(settings, redis)
    except KeyLoadFailure:
        # No degraded mode: refuse to serve without key material
        logger.exception("Failed to load signing keys")
        await redis.aclose()
        raise
    app.state.redis = redis

    yield

    logger.info("Shutting down Token Service...")
    try:
        await app.state.redis.aclose()
    except Exception:
        logger.exception("Error closing Redis connection")
    logger.info("Shutdown complete.")


# ---------------------------------------------------------------------------
# Global exception handler: never leak internals
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        # Let cancellation propagate: swallowing it breaks graceful shutdown
        if isinstance(exc, asyncio.CancelledError):
            raise
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_application() -> FastAPI:
    """Application factory."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Token Service API",
        description="Issues and verifies RS256-signed tokens with a Redis-backed deny-list.",
        version=SERVICE_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]  # slowapi typing mismatch
    app.add_middleware(SlowAPIMiddleware)

    # Blocked IPs are rejected before rate limiting and routing
    app.add_middleware(IPStatusMiddleware)

    # Request ID and security headers (outermost = runs first)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    _register_exception_handlers(app)

    app.include_router(api_router, prefix="/api/v1")

    # ------------------------------------------------------------------
    # Health check endpoints (no prefix)
    # ------------------------------------------------------------------

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Liveness check: is the process running?"""
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
        }

    @app.get("/ready", tags=["Health"])
    async def readiness_check(request: Request):
        """Readiness check: can the service verify tokens?"""
        checks: dict[str, str] = {
            "keys": "ok" if getattr(request.app.state, "token_engine", None) else "unavailable"
        }

        try:
            await request.app.state.redis.ping()
            checks["redis"] = "ok"
        except Exception:
            checks["redis"] = "unavailable"

        all_ok = all(v == "ok" for v in checks.values())
        payload = {
            "status": "ready" if all_ok else "degraded",
            "checks": checks,
        }

        if not all_ok:
            return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=payload)
        return payload

    @app.get("/api/v1/ping", tags=["Health"])
    async def ping() -> dict:
        """Simple ping endpoint for debugging."""
        return {"ping": "pong"}

    return app


# Create the application instance
app = create_application()


def run() -> None:
    """Serve the application on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )

if __name__ == "__main__":
    run()
