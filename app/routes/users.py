import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models import ADMIN_ROLES, User
from ..security_utils import hash_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

USER_ROLES = ADMIN_ROLES + ("OWNER", "MANAGER", "GENERAL_MANAGER")


def check_role(role: Optional[str]) -> Optional[str]:
    if role is not None and role not in USER_ROLES:
        raise ValueError(f"role must be one of {', '.join(USER_ROLES)}")
    return role


def check_password(password: Optional[str]) -> Optional[str]:
    if password and len(password) < 8:
        raise ValueError("Password must be at least 8 characters")
    return password


class UserFields(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        return check_role(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return check_password(v)


class UserCreate(UserFields):
    """Body for POST /users; required fields are checked in the handler"""


class UserUpdate(UserFields):
    isActive: Optional[bool] = None


def serialize_user(user: User) -> dict:
    """Never exposes the password hash"""
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "ownerId": user.owner_id,
        "isActive": user.is_active,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "updatedAt": user.updated_at.isoformat() if user.updated_at else None,
    }


def get_user_or_404(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("")
async def list_users(
    role: Optional[str] = Query(None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    return [serialize_user(u) for u in query.order_by(User.name.asc()).all()]


@router.post("", status_code=201)
async def create_user(
    data: UserCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Create a staff or owner login"""
    if not data.email or not data.password or not data.role:
        raise HTTPException(status_code=400, detail="Email, password, and role are required")

    # SUPER_ADMIN accounts are only created by the seed script or by another super admin
    if data.role == "SUPER_ADMIN" and current_user.role != "SUPER_ADMIN":
        raise HTTPException(status_code=403, detail="Only a super admin can create super admins")

    email = data.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="User with this email already exists")

    user = User(
        email=email,
        name=data.name or None,
        role=data.role,
        password_hash=hash_password(data.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"✅ User {user.id} ({user.role}) created by {current_user.id}")
    return serialize_user(user)


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return serialize_user(get_user_or_404(db, user_id))


@router.patch("/{user_id}")
async def update_user(
    user_id: str,
    data: UserUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = get_user_or_404(db, user_id)
    if user.role == "SUPER_ADMIN" and current_user.role != "SUPER_ADMIN":
        raise HTTPException(status_code=403, detail="Only a super admin can modify super admins")
    if data.role == "SUPER_ADMIN" and current_user.role != "SUPER_ADMIN":
        raise HTTPException(status_code=403, detail="Only a super admin can create super admins")

    if data.email is not None:
        email = data.email.lower()
        if email != user.email:
            taken = db.query(User).filter(User.email == email, User.id != user.id).first()
            if taken:
                raise HTTPException(status_code=400, detail="Email is already taken")
        user.email = email
    if data.name is not None:
        user.name = data.name or None
    if data.role is not None:
        user.role = data.role
    if data.isActive is not None:
        user.is_active = data.isActive
    if data.password:
        user.password_hash = hash_password(data.password)

    db.commit()
    db.refresh(user)
    logger.info(f"✏️ User {user.id} updated by {current_user.id}")
    return serialize_user(user)


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Deactivate a login; rows that reference the user keep pointing at it"""
    user = get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    if user.role == "SUPER_ADMIN" and current_user.role != "SUPER_ADMIN":
        raise HTTPException(status_code=403, detail="Only a super admin can modify super admins")

    user.is_active = False
    db.commit()
    logger.info(f"🚫 User {user.id} deactivated by {current_user.id}")
    return {"success": True}
