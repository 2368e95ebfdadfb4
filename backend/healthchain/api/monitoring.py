"""
System monitoring endpoints (admin).
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import require_role
from ..core.config import settings
from ..core.database import get_db
from ..core.responses import envelope
from ..services.cache import CacheService, cached
from ..services.monitoring import collect_system_health, collect_system_stats


logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/admin/monitoring",
    tags=["Monitoring"],
    dependencies=[Depends(require_role("admin"))],
)


@cached(key_func=lambda db: f"{CacheService.PREFIX_MONITORING}:health", ttl=settings.cache_ttl_monitoring)
def _cached_health(db: Session) -> dict:
    return collect_system_health(db)


@cached(key_func=lambda db, days: f"{CacheService.PREFIX_MONITORING}:stats:{days}", ttl=settings.cache_ttl_monitoring)
def _cached_stats(db: Session, days: int) -> dict:
    return collect_system_stats(db, days)


@router.get("/health")
async def system_health(db: Session = Depends(get_db)):
    health = _cached_health(db)
    if health["system_health"]["status"] != "healthy":
        logger.warning(f"System health {health['system_health']['status']} (score {health['system_health']['score']})")
    return envelope(data=health)


@router.get("/stats")
async def system_stats(
    period: int = Query(30, ge=1, le=365, description="Days to cover"),
    db: Session = Depends(get_db),
):
    return envelope(data=_cached_stats(db, period))
