"""
Deywuro SMS Service
Sends SMS notifications through the Deywuro HTTP API (https://deywuro.com/api/sms)

Response codes:
    0   success
    401 invalid credentials
    402 missing required fields
    403 insufficient balance
    404 not routable
    500 other server errors
"""

import logging
import re
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..config import DEYWURO_API_URL
from .settings_service import resolve_config

logger = logging.getLogger(__name__)

SMS_SETTING_KEYS = {
    "username": "DEYWURO_USERNAME",
    "password": "DEYWURO_PASSWORD",
    "source": "DEYWURO_SOURCE",
    "smsEnabled": "SMS_ENABLED",
}

DEYWURO_ERROR_MESSAGES = {
    401: (
        "Invalid Deywuro credentials. Please check your username and password in "
        "Settings → SMS (Deywuro) and ensure they are correct."
    ),
    403: "Insufficient balance in Deywuro account",
    404: "Phone number not routable",
    402: "Missing required fields",
    500: "Deywuro server error",
}

CREDENTIALS_MISSING = (
    "Deywuro credentials are not configured. Please enter your username and password in "
    'Settings → SMS (Deywuro) and click "Save Changes".'
)


def format_phone_number(phone: str) -> str:
    """Digits only, with the Ghana country code (233) assumed when missing"""
    cleaned = re.sub(r"\D", "", phone or "")
    if not cleaned.startswith("233"):
        if cleaned.startswith("0"):
            cleaned = "233" + cleaned[1:]
        else:
            cleaned = "233" + cleaned
    return cleaned


def _sender_id(source: str) -> str:
    # Max 11 characters, alphanumeric only
    return re.sub(r"[^a-zA-Z0-9]", "", source[:11])


def _as_enabled(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return True
    return str(value) == "true"


async def send_sms(
    db: Session,
    phone_number: str,
    message: str,
    config: Optional[dict] = None,
) -> dict:
    """
    Send an SMS via Deywuro

    Args:
        db: Database session (settings lookup)
        phone_number: Recipient phone number, any local or international format
        message: SMS text
        config: Optional overrides {username, password, source, smsEnabled, skipSend}

    Returns:
        {"success": bool, "messageId": str} or {"success": False, "error": str}
    """
    config = config or {}
    resolved = resolve_config(db, SMS_SETTING_KEYS, config)

    username = resolved.get("username")
    password = resolved.get("password")
    source = resolved.get("source") or "HostHub"
    sms_enabled = _as_enabled(resolved.get("smsEnabled"))

    if not sms_enabled:
        return {"success": False, "error": "SMS notifications are disabled"}

    if not username or not password:
        return {"success": False, "error": CREDENTIALS_MISSING}

    destination = format_phone_number(phone_number)
    form = {
        "username": username.strip(),
        "password": password.strip(),
        "destination": destination,
        "source": _sender_id(source),
        "message": message,
    }

    try:
        logger.info(f"📱 Sending SMS to {destination} ({len(message)} chars)")
        async with httpx.AsyncClient() as client:
            response = await client.post(DEYWURO_API_URL, data=form, timeout=15.0)
        body = response.text
        logger.info(f"📡 Deywuro API response status: {response.status_code}")

        if config.get("skipSend"):
            # Credential validation: routing/field errors still prove the login works
            if not response.is_success:
                return {
                    "success": False,
                    "error": f"SMS API returned status {response.status_code}: {body}",
                }
            try:
                parsed = response.json()
            except ValueError:
                return {"success": False, "error": "Invalid response from Deywuro API"}
            if parsed.get("code") in (0, 402, 404):
                return {"success": True, "messageId": parsed.get("message")}
            return {
                "success": False,
                "error": parsed.get("message") or "Failed to validate credentials",
            }

        if not response.is_success:
            raise RuntimeError(f"SMS API returned status {response.status_code}: {body}")

        try:
            data = response.json()
        except ValueError as e:
            raise RuntimeError(f"Invalid response from Deywuro API: {body}") from e

        code = data.get("code")
        if code == 0:
            logger.info(f"✅ SMS sent to {destination}")
            return {"success": True, "messageId": data.get("message")}

        error_message = DEYWURO_ERROR_MESSAGES.get(code) or data.get("message") or "Failed to send SMS"
        logger.warning(f"⚠️ Deywuro rejected SMS (code {code}): {error_message}")
        return {"success": False, "error": error_message}

    except Exception as e:
        logger.error(f"❌ SMS sending failed: {str(e)}")
        return {"success": False, "error": str(e) or "Failed to send SMS"}
