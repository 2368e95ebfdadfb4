"""
User management endpoints, admin only.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import require_role
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope, paginate
from ..core.security import hash_password
from ..core.transactions import transaction
from ..models.user import User, UserRole
from ..schemas.common import page_params
from ..schemas.user import UserCreate, UserResponse, UserUpdate
from ..services.audit import AuditService, changed_fields
from .auth import validate_password_strength
from .deps import not_found


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/users", tags=["User Management"])


def _get_user_or_404(db: Session, user_id: UUID) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise not_found("User not found")
    return user


def _ensure_unique(db: Session, email: Optional[str] = None, username: Optional[str] = None,
                   exclude_id: Optional[UUID] = None) -> None:
    if email:
        query = db.query(User).filter(User.email == email)
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
    if username:
        query = db.query(User).filter(User.username == username)
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")


# =============================================================================
# List / Get
# =============================================================================


@router.get("", dependencies=[Depends(require_role("admin"))])
async def list_users(
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(20)),
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=100),
):
    """List users, optionally filtered by role, active flag or a name/email search."""
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            User.first_name.ilike(term),
            User.last_name.ilike(term),
            User.email.ilike(term),
            User.username.ilike(term),
        ))

    page = paginate(query.order_by(User.created_at.desc()), *pagination)
    return envelope(
        data=[UserResponse.model_validate(u) for u in page.items],
        meta={"pagination": page.meta()},
    )


@router.get("/{user_id}", dependencies=[Depends(require_role("admin"))])
async def get_user(user_id: UUID, db: Session = Depends(get_db)):
    return envelope(data=UserResponse.model_validate(_get_user_or_404(db, user_id)))


# =============================================================================
# Create / Update / Delete
# =============================================================================


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Create a user account. 409 when the email or username is taken."""
    email = body.email.lower()
    _ensure_unique(db, email=email, username=body.username)
    validate_password_strength(body.password)

    try:
        with transaction(db):
            user = User(
                email=email,
                username=body.username,
                password_hash=hash_password(body.password),
                first_name=body.first_name,
                last_name=body.last_name,
                role=body.role,
                phone=body.phone,
                department=body.department,
                is_active=True,
            )
            db.add(user)
            db.flush()
            AuditService(db, user=admin, request=request, autocommit=False).log_create(
                "users", user.id, new_values={"role": user.role.value}
            )
    except SQLAlchemyError as e:
        logger.error(f"Failed to create user: {e}")
        raise APIError(500, "Failed to create user", code="USER_CREATE_FAILED")

    logger.info(f"Admin {admin.id} created user {user.id} with role {user.role.value}")
    return envelope(data=UserResponse.model_validate(user), status_code=201)


@router.put("/{user_id}")
async def update_user(
    user_id: UUID,
    body: UserUpdate,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    user = _get_user_or_404(db, user_id)
    values = body.model_dump(exclude_unset=True)
    if not values:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid fields to update")

    if "email" in values and values["email"]:
        values["email"] = values["email"].lower()
        _ensure_unique(db, email=values["email"], exclude_id=user.id)
    if user.id == admin.id and values.get("is_active") is False:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot deactivate your own account")

    with transaction(db):
        for field, value in values.items():
            setattr(user, field, value)
        AuditService(db, user=admin, request=request, autocommit=False).log_update(
            "users", user.id, new_values=changed_fields(values)
        )

    return envelope(data=UserResponse.model_validate(user))


@router.delete("/{user_id}")
async def delete_user(
    user_id: UUID,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Soft delete: the account is deactivated, never removed."""
    if user_id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account")

    user = _get_user_or_404(db, user_id)
    with transaction(db):
        user.is_active = False
        AuditService(db, user=admin, request=request, autocommit=False).log_delete("users", user.id)

    logger.info(f"Admin {admin.id} deactivated user {user.id}")
    return envelope(data={"message": "User deactivated successfully", "id": str(user.id)})
