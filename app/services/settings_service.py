"""
Key/value settings stored in the database
Credential settings are encrypted at rest when SETTINGS_ENCRYPTION_KEY is configured
"""

import logging
import os
from typing import Optional

from sqlalchemy.orm import Session

from ..config import APP_URL
from ..models import Setting
from ..security_utils import decrypt_value, encrypt_value

logger = logging.getLogger(__name__)

# Never exported in backups, stored encrypted when possible
SECRET_SETTING_KEYS = {
    "DEYWURO_PASSWORD",
    "SMTP_PASSWORD",
    "TWILIO_AUTH_TOKEN",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
}


def get_settings(db: Session, keys: list[str]) -> dict[str, Optional[str]]:
    """Fetch several settings at once (decrypted), missing keys are omitted"""
    rows = db.query(Setting).filter(Setting.key.in_(keys)).all()
    result = {}
    for row in rows:
        result[row.key] = decrypt_value(row.value) if row.key in SECRET_SETTING_KEYS else row.value
    return result


def get_setting(db: Session, key: str, default: Optional[str] = None) -> Optional[str]:
    row = db.query(Setting).filter(Setting.key == key).first()
    if row is None or row.value is None:
        return default
    return decrypt_value(row.value) if key in SECRET_SETTING_KEYS else row.value


def get_bool_setting(db: Session, key: str, default: bool = True) -> bool:
    value = get_setting(db, key)
    if value is None or value == "":
        return default
    return value == "true"


def upsert_setting(db: Session, key: str, value: str, category: str = "general") -> Setting:
    """Insert or update a setting; the caller commits"""
    stored = encrypt_value(value) if key in SECRET_SETTING_KEYS else value
    row = db.query(Setting).filter(Setting.key == key).first()
    if row:
        row.value = stored
        row.category = category
    else:
        row = Setting(key=key, value=stored, category=category)
        db.add(row)
    return row


def resolve_config(db: Session, env_keys: dict[str, str], overrides: Optional[dict] = None) -> dict:
    """
    Resolve channel credentials: environment first, database settings override,
    explicit overrides (unsaved form values) win.

    env_keys maps config field -> setting/env key, e.g. {"username": "DEYWURO_USERNAME"}
    """
    overrides = overrides or {}
    resolved = {field: os.getenv(key) for field, key in env_keys.items()}

    try:
        stored = get_settings(db, list(env_keys.values()))
    except Exception as e:
        logger.warning(f"⚠️ Could not read settings from database, using environment only: {e}")
        stored = {}

    for field, key in env_keys.items():
        if key in stored and stored[key] is not None:
            resolved[field] = stored[key]
        if overrides.get(field) is not None:
            resolved[field] = overrides[field]
    return resolved


def get_app_base_url(db: Session) -> str:
    """Dashboard base URL used in notification links"""
    try:
        value = get_setting(db, "NEXT_PUBLIC_APP_URL")
    except Exception:
        value = None
    return (value or APP_URL).rstrip("/")
