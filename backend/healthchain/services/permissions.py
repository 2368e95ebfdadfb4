"""
Role permission resolution.

A role's effective permissions are its stored ``role_permissions`` rows
when it has any, otherwise the built-in defaults.
"""

import logging
from typing import Iterable, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from ..models.system import RolePermission
from ..models.user import ALL_PERMISSIONS, UserRole, get_default_permissions
from .cache import CacheService, get_cache


logger = logging.getLogger(__name__)

PERMISSION_CACHE_TTL = 300


def _role_value(role: Union[UserRole, str]) -> str:
    return role.value if isinstance(role, UserRole) else str(role)


def get_stored_permissions(db: Session, role: Union[UserRole, str]) -> list[str]:
    rows = (
        db.query(RolePermission.permission)
        .filter(RolePermission.role == _role_value(role))
        .order_by(RolePermission.permission)
        .all()
    )
    return [row.permission for row in rows]


def get_effective_permissions(db: Session, role: Union[UserRole, str]) -> set[str]:
    """Stored overrides win over the defaults for the whole role."""
    role_value = _role_value(role)
    cache = get_cache()
    cache_key = f"{CacheService.PREFIX_PERMISSIONS}:{role_value}"

    cached = cache.get(cache_key)
    if cached is not None:
        return set(cached)

    stored = get_stored_permissions(db, role_value)
    if stored:
        permissions = stored
    else:
        try:
            permissions = get_default_permissions(UserRole(role_value))
        except ValueError:
            permissions = []

    cache.set(cache_key, sorted(permissions), ttl=PERMISSION_CACHE_TTL)
    return set(permissions)


def validate_permissions(permissions: Iterable[str]) -> list[str]:
    """
    Reject permissions outside the catalogue.

    Raises:
        ValueError: naming the unknown permissions
    """
    permissions = list(dict.fromkeys(permissions))
    unknown = [p for p in permissions if p not in ALL_PERMISSIONS]
    if unknown:
        raise ValueError(f"Unknown permissions: {', '.join(sorted(unknown))}")
    return permissions


def set_role_permissions(
    db: Session,
    role: UserRole,
    permissions: Iterable[str],
    granted_by: Optional[UUID] = None,
) -> list[str]:
    """
    Replace the stored permission set of a role.

    The caller owns the transaction. An empty list leaves the role with no
    stored rows, which means it falls back to the defaults.
    """
    validated = validate_permissions(permissions)

    db.query(RolePermission).filter(RolePermission.role == role.value).delete(
        synchronize_session=False
    )
    for permission in validated:
        db.add(RolePermission(role=role.value, permission=permission, granted_by=granted_by))
    db.flush()

    get_cache().invalidate_permissions(role.value)
    logger.info(f"Role {role.value} permissions replaced ({len(validated)} granted)")
    return sorted(validated)


def reset_role_permissions(db: Session, role: Optional[UserRole] = None) -> int:
    """Drop stored overrides for one role (or all roles). Returns rows deleted."""
    query = db.query(RolePermission)
    if role is not None:
        query = query.filter(RolePermission.role == role.value)
    deleted = query.delete(synchronize_session=False)
    get_cache().invalidate_permissions(role.value if role else None)
    return deleted


def permission_matrix(db: Session) -> dict[str, dict]:
    """Every role with its effective permissions and whether they are customised."""
    matrix = {}
    for role in UserRole:
        stored = get_stored_permissions(db, role)
        matrix[role.value] = {
            "permissions": stored or get_default_permissions(role),
            "isCustom": bool(stored),
        }
    return matrix
