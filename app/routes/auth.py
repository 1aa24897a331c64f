import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import User
from ..rate_limiter import create_rate_limiter
from ..security_utils import create_access_token, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

# 10 attempts per minute per IP
rate_limit_login = create_rate_limiter(limit=10, window_seconds=60, key_prefix="login")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "ownerId": user.owner_id,
        "isActive": user.is_active,
    }


@router.post("/login")
async def login(
    data: LoginRequest,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_login),
):
    """Exchange email + password for a bearer token"""
    user: Optional[User] = db.query(User).filter(User.email == data.email.lower()).first()
    if user is None:
        user = db.query(User).filter(User.email == data.email).first()

    if not user or not user.is_active or not verify_password(data.password, user.password_hash):
        logger.warning(f"⚠️ Failed login attempt for {data.email}")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    token = create_access_token({"sub": user.id, "role": user.role})
    logger.info(f"✅ User {user.id} logged in")
    return {"accessToken": token, "tokenType": "bearer", "user": serialize_user(user)}


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    return serialize_user(current_user)
