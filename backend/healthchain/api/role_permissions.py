"""
Role permission endpoints (admin).

Stored overrides replace a role's default permission set; a role without
stored rows uses its defaults.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ..core.auth import require_role
from ..core.database import get_db
from ..core.responses import envelope
from ..core.transactions import transaction
from ..models.user import ALL_PERMISSIONS, User, UserRole, get_default_permissions
from ..schemas.admin import RolePermissionsUpdate
from ..services.audit import AuditService
from ..services.permissions import (
    get_stored_permissions,
    permission_matrix,
    reset_role_permissions,
    set_role_permissions,
    validate_permissions,
)


logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/admin/role-permissions",
    tags=["Role Permissions"],
    dependencies=[Depends(require_role("admin"))],
)


def _role_entry(db: Session, role: UserRole) -> dict:
    stored = get_stored_permissions(db, role)
    return {
        "role": role.value,
        "permissions": stored or get_default_permissions(role),
        "defaults": get_default_permissions(role),
        "isCustom": bool(stored),
    }


@router.get("")
async def get_permission_matrix(db: Session = Depends(get_db)):
    return envelope(data=permission_matrix(db), meta={"availablePermissions": list(ALL_PERMISSIONS)})


@router.post("/reset")
async def reset_all_permissions(
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    with transaction(db):
        deleted = reset_role_permissions(db)
        AuditService(db, user=admin, request=request, autocommit=False).log_delete("role_permissions", None)
    logger.info(f"All role permission overrides reset by {admin.id} ({deleted} rows)")
    return envelope(data=permission_matrix(db), meta={"deleted": deleted})


@router.get("/{role}")
async def get_role_permissions(role: UserRole, db: Session = Depends(get_db)):
    return envelope(data=_role_entry(db, role))


@router.put("/{role}")
async def update_role_permissions(
    role: UserRole,
    body: RolePermissionsUpdate,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Replace the role's permissions. Unknown permissions are rejected."""
    try:
        validate_permissions(body.permissions)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    old_permissions = get_stored_permissions(db, role) or get_default_permissions(role)
    with transaction(db):
        set_role_permissions(db, role, body.permissions, granted_by=admin.id)
        AuditService(db, user=admin, request=request, autocommit=False).log_update(
            "role_permissions", None,
            old_values={"role": role.value, "permissions": old_permissions},
            new_values={"role": role.value, "permissions": sorted(set(body.permissions))},
        )

    return envelope(data=_role_entry(db, role))


@router.post("/{role}/reset")
async def reset_role(
    role: UserRole,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    with transaction(db):
        reset_role_permissions(db, role)
        AuditService(db, user=admin, request=request, autocommit=False).log_delete("role_permissions", None)
    return envelope(data=_role_entry(db, role))
