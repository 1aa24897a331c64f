import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import CRON_SECRET
from .database import get_db
from .models import ADMIN_ROLES, User
from .security_utils import verify_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _user_from_token(token: str, db: Session) -> Optional[User]:
    payload = verify_access_token(token)
    if not payload or not payload.get("sub"):
        return None
    user = db.query(User).filter(User.id == payload["sub"]).first()
    if not user or not user.is_active:
        return None
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer JWT to an active user, 401 otherwise"""
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Unauthorized")

    user = _user_from_token(credentials.credentials, db)
    if not user:
        logger.warning("⚠️ Rejected request with invalid or expired token")
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Allow SUPER_ADMIN, ADMIN, FINANCE and OPERATIONS"""
    if current_user.role not in ADMIN_ROLES:
        logger.warning(f"⚠️ User {current_user.id} ({current_user.role}) denied admin access")
        raise HTTPException(status_code=403, detail="Forbidden")
    return current_user


def require_roles(*roles: str):
    """Dependency factory: admins plus the given extra roles"""

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in ADMIN_ROLES and current_user.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return current_user

    return checker


async def verify_cron_or_admin(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    """
    Cron endpoints accept either `Authorization: Bearer {CRON_SECRET}`
    or an admin access token. Returns the admin user, or None for cron calls.
    """
    auth_header = request.headers.get("authorization", "")
    token = auth_header[7:] if auth_header.lower().startswith("bearer ") else None

    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    if CRON_SECRET and token == CRON_SECRET:
        logger.info("🔄 Cron request authenticated with CRON_SECRET")
        return None

    user = _user_from_token(token, db)
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if user.role not in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="Forbidden")
    return user
