"""
Authentication and authorisation dependencies for FastAPI routes.

Provides:
- get_current_user: extracts & verifies JWT, returns the User row
- require_role(*roles): dependency factory enforcing role membership
- require_permission(permission): dependency factory enforcing a permission
  from the role permission table
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .database import get_db
from .security import decode_token
from ..models.user import User, UserRole
from ..services.permissions import get_effective_permissions


logger = logging.getLogger(__name__)

# The tokenUrl is informational (used by Swagger UI); actual login is POST /api/auth/login
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Decode the JWT bearer token and return the authenticated User.

    Raises 401 if the token is missing or invalid, 403 if the account is
    deactivated.
    """
    if not token:
        raise _unauthorized("Not authenticated")

    payload = decode_token(token)
    if payload is None or payload.get("type") != "access":
        raise _unauthorized("Invalid or expired token")

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise _unauthorized("Invalid token payload")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise _unauthorized("User not found")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account has been deactivated",
        )

    return user


def require_role(*allowed_roles: str):
    """
    Factory: returns a FastAPI dependency that checks the current user's role.

    Admins pass every role check.

    Usage:
        @router.delete("/{id}", dependencies=[Depends(require_role("doctor"))])
    """
    async def _check(user: User = Depends(get_current_user)) -> User:
        if user.role == UserRole.ADMIN:
            return user
        if user.role.value not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action",
            )
        return user

    return _check


def require_permission(permission: str):
    """
    Factory: returns a dependency that checks a catalogue permission
    (``patient.read``, ``system.settings`` ...) against the role's
    effective permissions, honouring stored overrides. Admins are checked
    like every other role.
    """
    async def _check(
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        if permission not in get_effective_permissions(db, user.role):
            logger.info(f"Permission {permission} denied for role {user.role.value}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action",
            )
        return user

    return _check


# Roles allowed to work with clinical records
CLINICAL_ROLES = ("doctor", "nurse")
CARE_TEAM_ROLES = ("doctor", "nurse", "pharmacist", "lab_technician", "staff")
