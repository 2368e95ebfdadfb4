"""
Authentication endpoints: login, refresh, me, change-password, logout.
"""

import logging
import re
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.auth import get_current_user
from ..core.database import get_db
from ..core.responses import envelope
from ..core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from ..models.user import User
from ..schemas.user import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    RefreshTokenRequest,
    RefreshTokenResponse,
    UserResponse,
)
from ..services.audit import AuditService, client_ip
from ..services.permissions import get_effective_permissions


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["Authentication"])

# Password complexity requirements
PASSWORD_MIN_LENGTH = 8
SPECIAL_CHARACTERS = re.compile(r'[!@#$%^&*(),.?":{}|<>\-_=+\[\]\\\/~`]')


def validate_password_strength(password: str) -> None:
    """Validate password meets complexity requirements. Raises HTTPException if not."""
    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if not re.search(r'[A-Z]', password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r'[0-9]', password):
        errors.append("Password must contain at least one number")
    if not SPECIAL_CHARACTERS.search(password):
        errors.append("Password must contain at least one special character")
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="; ".join(errors),
        )


def _token_pair(user: User) -> tuple[str, str]:
    token_data = {"sub": str(user.id), "email": user.email, "role": user.role.value}
    return create_access_token(data=token_data), create_refresh_token(data=token_data)


# =============================================================================
# Login
# =============================================================================


@router.post("/login")
async def login(credentials: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """
    Authenticate with email (or username) + password. Returns JWT access and
    refresh tokens together with the role's effective permissions.
    """
    identifier = credentials.email.strip()
    user = (
        db.query(User)
        .filter(or_(User.email == identifier.lower(), User.username == identifier))
        .first()
    )
    audit = AuditService(db, request=request)

    if not user or not verify_password(credentials.password, user.password_hash):
        logger.warning(f"Failed login attempt ip={client_ip(request) or 'unknown'}")
        if user:
            audit.log_login(user, success=False, error_message="Invalid password")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        audit.log_login(user, success=False, error_message="Account deactivated")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account has been deactivated. Contact your administrator.",
        )

    user.last_login = datetime.now(timezone.utc)
    db.commit()
    audit.log_login(user)

    access_token, refresh_token = _token_pair(user)
    logger.info(f"User {user.id} logged in")

    return envelope(data=LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserResponse.model_validate(user),
        permissions=sorted(get_effective_permissions(db, user.role)),
    ))


# =============================================================================
# Refresh Token
# =============================================================================


@router.post("/refresh")
async def refresh_token(body: RefreshTokenRequest, db: Session = Depends(get_db)):
    """Exchange a valid refresh token for a new token pair."""
    payload = decode_token(body.refresh_token)

    if payload is None or payload.get("type") != "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    user = db.query(User).filter(User.id == user_id).first() if user_id else None
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account has been deactivated",
        )

    access_token, new_refresh_token = _token_pair(user)
    logger.info(f"Token refreshed for user {user.id}")

    return envelope(data=RefreshTokenResponse(
        access_token=access_token,
        refresh_token=new_refresh_token,
    ))


# =============================================================================
# Current User
# =============================================================================


@router.get("/me")
async def get_me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Return the authenticated user's profile and permission set."""
    return envelope(data=MeResponse(
        user=UserResponse.model_validate(user),
        permissions=sorted(get_effective_permissions(db, user.role)),
    ))


# =============================================================================
# Change Password
# =============================================================================


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not verify_password(body.current_password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    validate_password_strength(body.new_password)

    user.password_hash = hash_password(body.new_password)
    db.commit()
    AuditService(db, user=user, request=request).log_update(
        "users", user.id, new_values={"fields": ["password"]}
    )

    return envelope(data={"message": "Password updated successfully"})


# =============================================================================
# Logout
# =============================================================================


@router.post("/logout")
async def logout(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Tokens are stateless; the client discards them. The logout is audited."""
    AuditService(db, user=user, request=request).log_logout(user)
    return envelope(data={"message": "Logged out successfully"})
