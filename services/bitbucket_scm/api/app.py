"""
FastAPI application factory for the Bitbucket webhook service.

Uses lifespan handler for startup/shutdown with async resource management.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bitbucket_scm.api.dependencies import close_scm, init_scm
from bitbucket_scm.config import get_settings
from bitbucket_scm.errors import ScmError
from bitbucket_scm.logging_config import configure_logging, get_logger

from .health import router as health_router
from .routers.webhooks import router as webhooks_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan handler for startup and shutdown."""
    settings = get_settings()

    # Startup
    configure_logging(
        json_logs=settings.json_logs,
        log_level=settings.log_level,
        app_name=settings.app_name,
    )
    logger.info("Starting Bitbucket webhook service", version="0.1.0")

    init_scm(settings.scm)

    yield

    # Shutdown
    logger.info("Shutting down Bitbucket webhook service")
    await close_scm()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title="Bitbucket SCM",
        description="Bitbucket Cloud webhook normalisation for CI/CD orchestrators",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):  # type: ignore[no-untyped-def]
        """Ensure every request has a request ID for logging correlation."""
        request_id = (
            request.headers.get("X-Request-UUID")
            or request.headers.get("X-Request-ID")
            or str(uuid.uuid4())
        )
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        structlog.contextvars.unbind_contextvars("request_id")

        return response

    @app.exception_handler(ScmError)
    async def scm_exception_handler(request: Request, exc: ScmError) -> JSONResponse:
        """Surface adapter errors with their own status code."""
        logger.warning(
            "Adapter error",
            error=str(exc),
            status_code=exc.status_code,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        logger.error("Unhandled exception", exc_info=exc, path=str(request.url.path))
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # Health endpoints (no prefix)
    app.include_router(health_router)

    app.include_router(webhooks_router, prefix=settings.api_prefix)

    return app
