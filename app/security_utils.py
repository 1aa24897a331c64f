"""
Security Utilities
Password hashing, JWT access tokens, HTML sanitization and encryption of
credential settings at rest
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

# Input sanitization
import bleach
from bleach.css_sanitizer import CSSSanitizer
from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError
from jose import jwt as jose_jwt

# Password hashing
from passlib.context import CryptContext

from .config import ACCESS_TOKEN_EXPIRE_MINUTES, SECRET_KEY, SETTINGS_ENCRYPTION_KEY

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Encryption for credential settings (optional)
try:
    fernet = Fernet(SETTINGS_ENCRYPTION_KEY) if SETTINGS_ENCRYPTION_KEY else None
except (ValueError, TypeError) as e:
    logger.error(f"❌ Invalid SETTINGS_ENCRYPTION_KEY, credentials will be stored in plain text: {e}")
    fernet = None


# ============================================================================
# PASSWORD SECURITY
# ============================================================================


def hash_password(password: str) -> str:
    """Hash password using bcrypt"""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify password against bcrypt hash"""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        logger.error(f"Password verification error: {e}")
        return False


# ============================================================================
# ACCESS TOKENS
# ============================================================================


def create_access_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token

    Args:
        data: Claims to encode (sub, role)
        expires_delta: Token lifetime (default ACCESS_TOKEN_EXPIRE_MINUTES)
    """
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify and decode a JWT access token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


# ============================================================================
# INPUT SANITIZATION
# ============================================================================

EMAIL_ALLOWED_TAGS = [
    "p",
    "br",
    "strong",
    "b",
    "em",
    "i",
    "u",
    "a",
    "ul",
    "ol",
    "li",
    "h1",
    "h2",
    "h3",
    "h4",
    "div",
    "span",
    "table",
    "tr",
    "td",
    "th",
    "tbody",
    "thead",
    "img",
    "hr",
    "blockquote",
]


def sanitize_html(html_content: str, allowed_tags: Optional[list] = None) -> str:
    """
    Sanitize HTML content of user-authored email templates.
    {{variable}} placeholders are plain text and pass through untouched.
    """
    if allowed_tags is None:
        allowed_tags = EMAIL_ALLOWED_TAGS

    allowed_attributes = {
        "a": ["href", "title", "target"],
        "img": ["src", "alt", "width", "height"],
        "*": ["class", "style"],
    }

    css_sanitizer = CSSSanitizer(
        allowed_css_properties=[
            "color",
            "background-color",
            "font-weight",
            "font-size",
            "text-align",
            "padding",
            "margin",
        ]
    )

    return bleach.clean(
        html_content,
        tags=allowed_tags,
        attributes=allowed_attributes,
        css_sanitizer=css_sanitizer,
        strip=True,
    )


# ============================================================================
# CREDENTIAL ENCRYPTION
# ============================================================================


def encrypt_value(value: str) -> str:
    """Encrypt a credential setting when an encryption key is configured"""
    if not fernet or not value:
        return value
    return fernet.encrypt(value.encode()).decode()


def decrypt_value(encrypted: Optional[str]) -> str:
    """Decrypt a credential setting, falling back to the raw value"""
    if not fernet or not encrypted:
        return encrypted or ""
    try:
        return fernet.decrypt(encrypted.encode()).decode()
    except (InvalidToken, ValueError):
        return encrypted
