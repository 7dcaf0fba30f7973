"""
Status API routes - Health checks for dashboard dependencies.

Public endpoint (no auth) for uptime monitoring.
Rate limited via a short result cache.
"""

import asyncio
import time
from datetime import UTC, datetime
from enum import Enum

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import text
from structlog import get_logger

from app.api.dependencies import get_object_store
from app.config import settings
from app.db.session import Database, get_database
from app.services.object_store import ObjectStore

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

DEGRADED_LATENCY_THRESHOLD = 1000  # ms

# Rate limiting: cache last result for 10 seconds
_status_cache: dict[str, tuple[datetime, "ServiceStatusResponse"]] = {}
_CACHE_TTL_SECONDS = 10


class StatusLevel(str, Enum):
    """Status levels for health checks."""

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


class ProviderStatus(BaseModel):
    """Status of a single provider."""

    status: StatusLevel
    latency_ms: int | None = None
    last_check: str = Field(..., description="ISO 8601 timestamp")
    message: str | None = None


class ServiceStatusResponse(BaseModel):
    """Response for /v1/status endpoint."""

    service: str = "lenscherry-billing-dashboard"
    status: StatusLevel
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str
    providers: dict[str, ProviderStatus]


def _timed_status(start: float, timestamp: str) -> ProviderStatus:
    latency_ms = int((time.perf_counter() - start) * 1000)
    status = (
        StatusLevel.DEGRADED if latency_ms > DEGRADED_LATENCY_THRESHOLD else StatusLevel.OPERATIONAL
    )
    return ProviderStatus(
        status=status,
        latency_ms=latency_ms,
        last_check=timestamp,
        message="High latency" if status == StatusLevel.DEGRADED else None,
    )


async def check_postgresql(database: Database) -> ProviderStatus:
    """Check PostgreSQL connectivity."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    try:
        async with database.session() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("postgresql_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Connection failed",
        )

    return _timed_status(start, timestamp)


async def check_object_storage(object_store: ObjectStore) -> ProviderStatus:
    """Check the image bucket is reachable (HEAD bucket in a worker thread)."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    try:
        await asyncio.to_thread(object_store.check_bucket)
    except Exception as e:
        logger.warning("object_storage_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Bucket unreachable",
        )

    return _timed_status(start, timestamp)


def calculate_overall_status(providers: dict[str, ProviderStatus]) -> StatusLevel:
    """Calculate overall service status from provider statuses."""
    statuses = [p.status for p in providers.values()]

    if StatusLevel.OUTAGE in statuses:
        return StatusLevel.OUTAGE
    if StatusLevel.DEGRADED in statuses:
        return StatusLevel.DEGRADED
    return StatusLevel.OPERATIONAL


@router.get("/v1/status", response_model=ServiceStatusResponse)
async def get_status(
    database: Database = Depends(get_database),
    object_store: ObjectStore = Depends(get_object_store),
) -> ServiceStatusResponse:
    """
    Get dashboard service status.

    Public endpoint (no auth). Checks PostgreSQL and object storage
    concurrently. Rate limited via 10-second cache to prevent abuse.
    """
    cache_key = "status"
    now = datetime.now(UTC)

    if cache_key in _status_cache:
        cached_time, cached_response = _status_cache[cache_key]
        age_seconds = (now - cached_time).total_seconds()
        if age_seconds < _CACHE_TTL_SECONDS:
            logger.debug("status_cache_hit", age_seconds=age_seconds)
            return cached_response

    postgresql_status, storage_status = await asyncio.gather(
        check_postgresql(database),
        check_object_storage(object_store),
    )

    providers = {
        "postgresql": postgresql_status,
        "object_storage": storage_status,
    }

    response = ServiceStatusResponse(
        service=settings.service_name,
        status=calculate_overall_status(providers),
        timestamp=now.isoformat(),
        version=settings.api_version,
        providers=providers,
    )

    _status_cache[cache_key] = (now, response)

    return response
