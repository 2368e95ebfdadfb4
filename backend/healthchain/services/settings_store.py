"""
System settings persistence.

Settings are flat ``key -> value`` pairs. Built-in defaults are grouped by
category; stored rows in ``system_settings`` override them key by key.
Values are stored as text together with a ``setting_type`` so they can be
read back as the same JSON type.
"""

import json
import logging
from copy import deepcopy
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..core.config import settings as app_settings
from ..models.system import SettingType, SystemSetting, SystemSettingHistory
from .cache import CacheService, get_cache


logger = logging.getLogger(__name__)


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_SETTINGS_BY_CATEGORY: dict[str, dict[str, Any]] = {
    "general": {
        "systemName": "HealthChain EMR System",
        "systemDescription": "Electronic Medical Records Management System",
        "timezone": "Asia/Bangkok",
        "language": "th",
        "dateFormat": "DD/MM/YYYY",
        "timeFormat": "24h",
    },
    "userManagement": {
        "allowRegistration": True,
        "requireEmailVerification": True,
        "passwordMinLength": 8,
        "passwordRequireSpecial": True,
        "passwordRequireNumbers": True,
        "passwordRequireUppercase": True,
        "sessionTimeout": 24,
        "maxLoginAttempts": 5,
        "lockoutDuration": 30,
    },
    "notifications": {
        "emailNotifications": True,
        "smsNotifications": False,
        "systemAlerts": True,
        "backupNotifications": True,
        "maintenanceNotifications": True,
    },
    "security": {
        "twoFactorAuth": False,
        "encryptionLevel": "AES-256",
        "auditLogging": True,
        "ipWhitelist": [],
        "allowedDomains": [],
    },
    "database": {
        "autoBackup": True,
        "backupFrequency": "daily",
        "retentionPeriod": 90,
        "compressionEnabled": True,
    },
    "email": {
        "smtpHost": "smtp.gmail.com",
        "smtpPort": 587,
        "smtpUser": "system@healthchain.com",
        "smtpPassword": "",
        "fromName": "HealthChain System",
        "fromEmail": "noreply@healthchain.com",
    },
    "api": {
        "apiRateLimit": 1000,
        "apiTimeout": 30000,
        "corsOrigins": ["http://localhost:3000"],
    },
    "fileUpload": {
        "maxFileSize": 10485760,
        "allowedFileTypes": ["pdf", "jpg", "jpeg", "png", "doc", "docx"],
        "fileStoragePath": "/uploads",
    },
    "maintenance": {
        "maintenanceMode": False,
        "maintenanceMessage": "System is under maintenance. Please try again later.",
        "scheduledMaintenance": None,
    },
}

SETTING_CATEGORIES = tuple(DEFAULT_SETTINGS_BY_CATEGORY)

CRITICAL_SETTINGS = ("systemName", "timezone", "language", "sessionTimeout")

# Never returned in clear text
SECRET_SETTINGS = ("smtpPassword",)
SECRET_MASK = "********"

MERGED_CACHE_KEY = f"{CacheService.PREFIX_SETTINGS}:merged"


def default_settings() -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for values in DEFAULT_SETTINGS_BY_CATEGORY.values():
        merged.update(deepcopy(values))
    return merged


def category_counts() -> dict[str, int]:
    return {name: len(values) for name, values in DEFAULT_SETTINGS_BY_CATEGORY.items()}


# =============================================================================
# Typed encode / decode
# =============================================================================

def infer_setting_type(value: Any) -> SettingType:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return SettingType.BOOLEAN
    if isinstance(value, (int, float)):
        return SettingType.NUMBER
    if isinstance(value, (dict, list)) or value is None:
        return SettingType.JSON
    return SettingType.STRING


def encode_setting(value: Any) -> tuple[str, SettingType]:
    setting_type = infer_setting_type(value)
    if setting_type == SettingType.BOOLEAN:
        return ("true" if value else "false"), setting_type
    if setting_type == SettingType.JSON:
        return json.dumps(value), setting_type
    return str(value), setting_type


def decode_setting(raw: Optional[str], setting_type: SettingType) -> Any:
    if raw is None:
        return None
    if setting_type == SettingType.BOOLEAN:
        return raw == "true"
    if setting_type == SettingType.NUMBER:
        try:
            number = float(raw)
        except ValueError:
            return raw
        return int(number) if number.is_integer() else number
    if setting_type == SettingType.JSON:
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw
    return raw


# =============================================================================
# Queries
# =============================================================================

def get_merged_settings(db: Session) -> tuple[dict[str, Any], Optional[str]]:
    """
    Defaults overlaid with stored rows.

    Returns:
        (settings, last updated ISO timestamp or None)
    """
    cache = get_cache()
    cached = cache.get(MERGED_CACHE_KEY)
    if cached is not None:
        return cached["settings"], cached["lastUpdated"]

    merged = default_settings()
    rows = db.query(SystemSetting).order_by(SystemSetting.updated_at.desc()).all()
    for row in rows:
        merged[row.setting_key] = decode_setting(row.setting_value, row.setting_type)

    last_updated = rows[0].updated_at.isoformat() if rows else None
    cache.set(MERGED_CACHE_KEY, {"settings": merged, "lastUpdated": last_updated}, ttl=app_settings.cache_ttl_settings)
    return merged, last_updated


def mask_secrets(values: dict[str, Any]) -> dict[str, Any]:
    masked = dict(values)
    for key in SECRET_SETTINGS:
        if masked.get(key):
            masked[key] = SECRET_MASK
    return masked


def drop_masked_secrets(values: dict[str, Any]) -> dict[str, Any]:
    """Secrets echoed back as the mask keep their stored value."""
    return {
        key: value
        for key, value in values.items()
        if not (key in SECRET_SETTINGS and value == SECRET_MASK)
    }


def missing_critical_setting(values: dict[str, Any]) -> Optional[str]:
    """First critical key that is absent, null or empty, if any."""
    for key in CRITICAL_SETTINGS:
        value = values.get(key)
        if value is None or value == "":
            return key
    return None


# =============================================================================
# Writes
# =============================================================================

def upsert_settings(
    db: Session,
    values: dict[str, Any],
    updated_by: Optional[UUID],
    change_type: str = "update",
) -> list[str]:
    """
    Insert or update each setting and write a history row per changed key.

    The caller owns the transaction. Returns the keys whose stored value
    changed.
    """
    changed: list[str] = []
    existing = {
        row.setting_key: row
        for row in db.query(SystemSetting).filter(SystemSetting.setting_key.in_(list(values))).all()
    }

    for key, value in values.items():
        encoded, setting_type = encode_setting(value)
        row = existing.get(key)
        old_value = row.setting_value if row else None

        if row is None:
            db.add(SystemSetting(
                setting_key=key,
                setting_value=encoded,
                setting_type=setting_type,
                updated_by=updated_by,
            ))
        elif row.setting_value == encoded and row.setting_type == setting_type:
            continue
        else:
            row.setting_value = encoded
            row.setting_type = setting_type
            row.updated_by = updated_by

        db.add(SystemSettingHistory(
            setting_key=key,
            old_value=old_value,
            new_value=encoded,
            change_type=change_type if row is not None else "create",
            changed_by=updated_by,
        ))
        changed.append(key)

    db.flush()
    get_cache().invalidate_settings()
    logger.info(f"{len(changed)} system settings written ({change_type})")
    return changed


def defaults_for_reset(category: Optional[str]) -> dict[str, Any]:
    """
    Default values to restore for a category, or for every category.

    Raises:
        KeyError: unknown category
    """
    if category:
        return deepcopy(DEFAULT_SETTINGS_BY_CATEGORY[category])
    return default_settings()
