"""
Health check endpoints for monitoring.

Provides health status for load balancers, monitoring systems,
and container orchestration health probes.

Endpoints:
- /health: Basic health check with database ping
- /health/ready: Deep readiness check (DB, Redis, task queue)
- /health/live: Simple alive check
- /api/admin/queue/status: Queue monitoring (admin)
- /api/admin/cache/stats: Cache health (admin)
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import require_role
from ..core.config import settings
from ..core.database import get_db
from ..core.responses import envelope
from ..schemas.common import HealthResponse
from ..services.cache import get_cache
from ..tasks.celery_app import get_queue_stats


logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])

SLOW_DB_PING_MS = 100


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get(
    "/health",
    summary="Health Check",
    description="Returns the health status of the API and its database.",
)
async def health_check(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Health check endpoint for monitoring systems.

    Checks:
    - API is responding
    - Database connection is healthy
    - Database response time
    """
    db_status = "connected"
    db_response_time_ms = None

    try:
        start = time.time()
        db.execute(text("SELECT 1"))
        db_response_time_ms = int((time.time() - start) * 1000)

        if db_response_time_ms > SLOW_DB_PING_MS:
            logger.warning(f"Slow database response: {db_response_time_ms}ms")
    except SQLAlchemyError as e:
        db_status = "disconnected"
        logger.error(f"Database health check failed: {e}")

    health = HealthResponse(
        status="healthy" if db_status == "connected" else "unhealthy",
        version=settings.app_version,
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        environment=settings.environment,
    )
    return envelope(data=health, meta={"dbResponseTimeMs": db_response_time_ms})


@router.get(
    "/health/ready",
    summary="Readiness Check",
    description="Deep readiness check for all dependencies.",
)
async def readiness_check(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Readiness probe for container orchestration.

    The database is required; Redis and the task queue are reported but
    do not fail readiness.
    """
    components = {}
    overall_healthy = True

    try:
        db.execute(text("SELECT 1"))
        components["database"] = {"status": "healthy", "connected": True}
    except SQLAlchemyError as e:
        components["database"] = {
            "status": "unhealthy",
            "connected": False,
            "error": str(e)[:100],
        }
        overall_healthy = False

    redis_health = get_cache().health_check()
    components["redis"] = redis_health
    if redis_health.get("status") != "healthy":
        logger.info("Redis unavailable; serving without cache")

    components["queue"] = {"depths": get_queue_stats()}

    return envelope(data={
        "status": "ready" if overall_healthy else "not_ready",
        "version": settings.app_version,
        "timestamp": _now_iso(),
        "environment": settings.environment,
        "components": components,
    })


@router.get(
    "/health/live",
    summary="Liveness Check",
    description="Simple liveness check to verify the API is running.",
)
async def liveness_check() -> Dict[str, Any]:
    """Does NOT check dependencies; use /health/ready for that."""
    return envelope(data={"status": "alive", "timestamp": _now_iso()})


# =============================================================================
# Admin Endpoints
# =============================================================================

@router.get(
    "/api/admin/queue/status",
    summary="Queue Status",
    description="Get Celery queue depths (admin only).",
    dependencies=[Depends(require_role("admin"))],
)
async def get_queue_status() -> Dict[str, Any]:
    return envelope(data={"queues": get_queue_stats(), "timestamp": _now_iso()})


@router.get(
    "/api/admin/cache/stats",
    summary="Cache Statistics",
    description="Get Redis cache health (admin only).",
    dependencies=[Depends(require_role("admin"))],
)
async def get_cache_stats() -> Dict[str, Any]:
    return envelope(data={"health": get_cache().health_check(), "timestamp": _now_iso()})
