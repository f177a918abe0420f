"""
FastAPI Main Application
Entry point for the revenue-cycle claims API
Source: https://fastapi.tiangolo.com/
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from revcycle.api.config import settings
from revcycle.api.deps import reset_services
from revcycle.api.routes import claims, codes, health, remittance
from revcycle.db.connection import close_db_connection
from revcycle.gateways.clearinghouse_gateway import reset_clearinghouse_gateway
from revcycle.utils.logging import get_logger, setup_logging

# Setup logging
setup_logging(
    level=settings.LOG_LEVEL,
    log_file=settings.LOG_FILE,
    json_logs=settings.json_logs,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]  # noqa: ARG001
    """
    Application lifespan manager.

    Source: https://fastapi.tiangolo.com/advanced/events/
    """
    # Startup
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")
    logger.info(f"Debug mode: {settings.DEBUG}")

    yield

    # Shutdown
    logger.info("Shutting down application")
    reset_services()
    await reset_clearinghouse_gateway()
    await close_db_connection()
    logger.info("Database connections closed")


app = FastAPI(
    title="Revenue-Cycle Claims API",
    description="Claim scrub, clearinghouse submission, status tracking and remittance reconciliation",
    version="1.0.0",
    docs_url="/docs" if not settings.is_production else None,  # Disable docs in production
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
    lifespan=lifespan,
)

# CORS middleware
# Source: https://fastapi.tiangolo.com/tutorial/cors/
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_CREDENTIALS,
    allow_methods=settings.CORS_METHODS,
    allow_headers=settings.CORS_HEADERS,
)

# Include routers
app.include_router(health.router)
app.include_router(claims.router)
app.include_router(remittance.router)
app.include_router(codes.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """
    Root endpoint with API information.
    """
    return {
        "name": "Revenue-Cycle Claims API",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "docs": "/docs" if not settings.is_production else "disabled",
    }
