"""Health check endpoints."""

from fastapi import APIRouter, status
from fastapi.responses import ORJSONResponse

from coursepath.config import get_settings
from coursepath.core.database import AsyncCassandraConnection
from coursepath.core.redis import get_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness check - reports if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness() -> ORJSONResponse:
    """Readiness check - Cassandra is required, Redis is optional."""
    settings = get_settings()
    cassandra_ok = AsyncCassandraConnection.is_connected()
    return ORJSONResponse(
        status_code=(
            status.HTTP_200_OK if cassandra_ok else status.HTTP_503_SERVICE_UNAVAILABLE
        ),
        content={
            "status": "ready" if cassandra_ok else "not_ready",
            "environment": settings.environment,
            "cassandra": cassandra_ok,
            "redis": get_redis() is not None,
        },
    )


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
