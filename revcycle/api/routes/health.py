"""
Health Check Routes
Service health monitoring endpoints
Source: https://microservices.io/patterns/observability/health-check-api.html
"""

from typing import Any

from fastapi import APIRouter

from revcycle.db.connection import check_db_connection
from revcycle.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Liveness plus database connectivity.
    """
    db_healthy = await check_db_connection()
    if not db_healthy:
        logger.warning("Health check: database unreachable")

    return {
        "status": "healthy" if db_healthy else "unhealthy",
        "service": "revcycle-claims-api",
        "checks": {
            "database": "healthy" if db_healthy else "unhealthy",
        },
    }
