"""
First-run bootstrap: creates the initial SUPER_ADMIN login so a fresh
deployment has someone who can reach the admin endpoints.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import User
from ..security_utils import hash_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def ensure_super_admin(db: Session, email: str, password: str, name: Optional[str] = None) -> tuple[User, bool]:
    """
    Create the SUPER_ADMIN for `email` unless that email already exists.
    Returns (user, created). An existing account is left untouched.
    """
    if not email or not password:
        raise ValueError("Email and password are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    email = email.strip().lower()
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        logger.info(f"ℹ️ User {email} already exists ({existing.role}), leaving it unchanged")
        return existing, False

    user = User(
        email=email,
        name=name or "Super Admin",
        role="SUPER_ADMIN",
        password_hash=hash_password(password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"✅ Super admin {email} created")
    return user, True
