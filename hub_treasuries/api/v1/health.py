"""Health check and observability endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from hub_treasuries import __version__
from hub_treasuries.core.bus import get_redis
from hub_treasuries.core.database import get_db
from hub_treasuries.core.metrics import get_metrics
from hub_treasuries.core.worker import get_worker_status
from hub_treasuries.schemas.common import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Check health of all services."""
    now = datetime.now(timezone.utc)

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        db_status = f"unhealthy: {str(e)[:50]}"

    # Check Redis
    try:
        redis = await get_redis()
        await redis.ping()
        redis_status = "healthy"
    except Exception as e:
        redis_status = f"unhealthy: {str(e)[:50]}"

    consumer = get_worker_status()
    all_healthy = db_status == "healthy" and redis_status == "healthy"

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        timestamp=now,
        version=__version__,
        database=db_status,
        redis=redis_status,
        consumer=consumer,
    )


@router.get("/metrics")
async def get_metrics_snapshot() -> Dict[str, Any]:
    """Custody API call metrics and signing latency histograms.

    Returns:
        - custody_endpoints: per-endpoint call counts, success rate and latency
        - sign_duration_ms: ``sign.time`` histogram per blockchain
    """
    return get_metrics().snapshot()
