"""
FastAPI Application Factory

Creates and configures the analytics API application.
"""

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import structlog

from funnel_analytics.analytics.errors import ValidationError
from funnel_analytics.config import get_settings
from funnel_analytics.serving.api.middleware import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from funnel_analytics.serving.api.routes import analytics_router, health_router

logger = structlog.get_logger(__name__)


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Rejected request parameters: 400 naming the field."""
    logger.warning("Request rejected", path=request.url.path, field=exc.field, error=exc.message)
    return JSONResponse(status_code=400, content={"detail": exc.message, "field": exc.field})


async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Event store failures are not retried here; the caller may retry the request."""
    logger.error(
        "Event store query failed",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(status_code=503, content={"detail": "Event store unavailable"})


def create_api_app(lifespan: Optional[Any] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        lifespan: Optional lifespan context (database setup/teardown)

    Returns:
        Configured FastAPI app instance
    """
    settings = get_settings()
    app = FastAPI(
        title="Funnel Analytics API",
        description="Session reconstruction and multi-dimension funnel drilldown",
        version=settings.version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])

    return app
