"""
System settings endpoints (admin).

Settings are defaults overlaid with rows from ``system_settings``; every
change writes a ``system_settings_history`` row.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import require_permission, require_role
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope, paginate
from ..core.transactions import transaction
from ..models.system import SystemSettingHistory
from ..models.user import User
from ..schemas.admin import SettingHistoryResponse, SettingsReset
from ..schemas.common import page_params
from ..services.audit import AuditService
from ..services.settings_store import (
    SETTING_CATEGORIES,
    category_counts,
    defaults_for_reset,
    drop_masked_secrets,
    get_merged_settings,
    mask_secrets,
    missing_critical_setting,
    upsert_settings,
)


logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/admin/settings",
    tags=["Settings"],
    dependencies=[Depends(require_role("admin")), Depends(require_permission("system.settings"))],
)


@router.get("")
async def get_settings(db: Session = Depends(get_db)):
    values, last_updated = get_merged_settings(db)
    return envelope(
        data=mask_secrets(values),
        meta={"lastUpdated": last_updated, "categories": category_counts()},
    )


@router.put("")
async def update_settings(
    request: Request,
    payload: Any = Body(None),
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """
    Upsert settings from ``{"settings": {...}}``.

    Every critical key must be present and non-empty.
    """
    values = payload.get("settings") if isinstance(payload, dict) else None
    if not isinstance(values, dict):
        raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid settings data", code="INVALID_SETTINGS")

    missing = missing_critical_setting(values)
    if missing:
        raise APIError(
            status.HTTP_400_BAD_REQUEST,
            f"Critical setting '{missing}' is required",
            code="MISSING_CRITICAL_SETTING",
            details={"setting": missing},
        )

    values = drop_masked_secrets(values)

    try:
        with transaction(db):
            changed = upsert_settings(db, values, updated_by=admin.id)
            AuditService(db, user=admin, request=request, autocommit=False).log_update(
                "system_settings", None, new_values={"fields": changed}
            )
    except SQLAlchemyError as e:
        logger.error(f"Failed to update system settings: {e}")
        raise APIError(500, "Failed to update settings", code="SETTINGS_UPDATE_FAILED")

    merged, last_updated = get_merged_settings(db)
    return envelope(
        data=mask_secrets(merged),
        meta={"updated": changed, "lastUpdated": last_updated},
    )


@router.post("/reset")
async def reset_settings(
    request: Request,
    body: Optional[SettingsReset] = None,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Restore the defaults of one category, or of every category."""
    category = body.category if body else None
    try:
        defaults = defaults_for_reset(category)
    except KeyError:
        raise APIError(
            status.HTTP_400_BAD_REQUEST,
            f"Invalid category. Must be one of: {', '.join(SETTING_CATEGORIES)}",
            code="INVALID_CATEGORY",
        )

    with transaction(db):
        changed = upsert_settings(db, defaults, updated_by=admin.id, change_type="reset")
        AuditService(db, user=admin, request=request, autocommit=False).log_update(
            "system_settings", None, new_values={"reset": category or "all", "fields": changed}
        )

    logger.info(f"Settings reset ({category or 'all'}) by {admin.id}")
    merged, _ = get_merged_settings(db)
    return envelope(data=mask_secrets(merged), meta={"reset": category or "all", "changed": len(changed)})


@router.get("/history")
async def settings_history(
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(50)),
    setting_key: Optional[str] = Query(None, alias="settingKey", max_length=100),
):
    query = db.query(SystemSettingHistory)
    if setting_key:
        query = query.filter(SystemSettingHistory.setting_key == setting_key)

    page = paginate(query.order_by(SystemSettingHistory.changed_at.desc()), *pagination)
    return envelope(
        data=[SettingHistoryResponse.model_validate(h) for h in page.items],
        meta={"pagination": page.meta()},
    )
