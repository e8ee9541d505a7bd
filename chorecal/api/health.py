"""
ChoreCal Health Check Endpoints
Liveness and readiness checks for the API process.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import redis.asyncio as aioredis
from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text

from chorecal.core.config import settings
from chorecal.database import AsyncSessionLocal

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health status values for components and overall system."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health status for an individual component."""

    status: HealthStatus
    latency_ms: Optional[float] = None
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Full health check response."""

    status: HealthStatus
    timestamp: str
    components: dict[str, ComponentHealth]
    version: str


class LivenessResponse(BaseModel):
    """Simple liveness check response."""

    status: str


async def check_database() -> ComponentHealth:
    """Run a trivial query and measure latency."""
    start_time = time.perf_counter()
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        latency = (time.perf_counter() - start_time) * 1000
        return ComponentHealth(
            status=HealthStatus.HEALTHY,
            latency_ms=round(latency, 2),
            message="Database connection successful",
        )
    except Exception as e:
        latency = (time.perf_counter() - start_time) * 1000
        logger.error(f"Database health check failed: {e}")
        return ComponentHealth(
            status=HealthStatus.UNHEALTHY,
            latency_ms=round(latency, 2),
            message=f"Database connection failed: {str(e)}",
        )


async def check_broker() -> ComponentHealth:
    """PING the Redis broker that carries background syncs."""
    start_time = time.perf_counter()
    try:
        redis_client = aioredis.from_url(
            settings.celery_broker_url,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )
        try:
            await redis_client.ping()
        finally:
            await redis_client.aclose()
        latency = (time.perf_counter() - start_time) * 1000
        return ComponentHealth(
            status=HealthStatus.HEALTHY,
            latency_ms=round(latency, 2),
            message="Broker connection successful",
        )
    except Exception as e:
        latency = (time.perf_counter() - start_time) * 1000
        logger.warning(f"Broker health check failed: {e}")
        # Without the broker only background syncs stop; the API still serves.
        return ComponentHealth(
            status=HealthStatus.DEGRADED,
            latency_ms=round(latency, 2),
            message=f"Broker connection failed: {str(e)}",
        )


def determine_overall_status(components: dict[str, ComponentHealth]) -> HealthStatus:
    """Database down is unhealthy; any other problem is degraded."""
    database = components.get("database")
    if database and database.status == HealthStatus.UNHEALTHY:
        return HealthStatus.UNHEALTHY
    if any(c.status != HealthStatus.HEALTHY for c in components.values()):
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", response_model=LivenessResponse, summary="Basic liveness check")
async def basic_health() -> LivenessResponse:
    """Returns OK while the process is serving requests."""
    return LivenessResponse(status="ok")


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness check",
    responses={503: {"description": "Database unavailable"}},
)
async def readiness_check(response: Response) -> HealthResponse:
    """Check the database and the Celery broker."""
    db_check, broker_check = await asyncio.gather(check_database(), check_broker())
    components = {"database": db_check, "broker": broker_check}

    overall = determine_overall_status(components)
    if overall == HealthStatus.UNHEALTHY:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc).isoformat(),
        components=components,
        version=settings.app_version,
    )
