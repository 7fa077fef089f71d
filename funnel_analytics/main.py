"""
FastAPI Production Application

Main entry point for the Funnel Analytics API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from funnel_analytics.config import get_settings
from funnel_analytics.config.logging import configure_logging
from funnel_analytics.database.connection import init_database, close_database
from funnel_analytics.serving.api import create_api_app

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()
    logger.info("Starting Funnel Analytics API", environment=settings.app_env)

    await init_database()

    yield

    logger.info("Shutting down...")
    await close_database()


app = create_api_app(lifespan=lifespan)


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": "Funnel Analytics API",
        "version": settings.version,
        "environment": settings.app_env,
        "documentation": "/docs",
    }


def run() -> None:
    """Console entry point: serve with uvicorn."""
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
