"""
Twilio WhatsApp Service
Sends WhatsApp notifications through the Twilio Messages API

Session messages (inside the 24h window) use Body; anything else needs an
approved Content template (ContentSid + numbered ContentVariables).
"""

import json
import logging
import os
import re
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..config import TWILIO_API_BASE
from .settings_service import resolve_config

logger = logging.getLogger(__name__)

WHATSAPP_SETTING_KEYS = {
    "accountSid": "TWILIO_ACCOUNT_SID",
    "authToken": "TWILIO_AUTH_TOKEN",
    "fromNumber": "TWILIO_WHATSAPP_NUMBER",
    "whatsappEnabled": "WHATSAPP_ENABLED",
}

CREDENTIALS_MISSING = (
    "Twilio WhatsApp credentials are not configured. Please enter your Account SID, Auth Token, "
    'and WhatsApp number in Settings → WhatsApp (Twilio) and click "Save Changes".'
)

TWILIO_ERROR_MESSAGES = {
    21211: "Invalid phone number format. Please use E.164 format (e.g., +233XXXXXXXXX)",
    21608: (
        "WhatsApp number not approved or not in sandbox. Please check your Twilio WhatsApp setup. "
        "For testing, use Twilio sandbox number: whatsapp:+14155238886"
    ),
    21610: "Message template not approved. For initial messages, you must use approved templates.",
    21212: (
        'Invalid "From" number. The WhatsApp number you provided is not set up in your Twilio account. '
        "Please verify the number in Twilio Console → Messaging → Try it out → Send a WhatsApp message, "
        "or use the sandbox number: whatsapp:+14155238886"
    ),
    63016: (
        "Message sent outside 24-hour window. Use a pre-approved message template. "
        "Go to Twilio Console → Content → Templates to create and approve templates. "
        "Then set the Content SID in the WHATSAPP_CONTENT_SID_<TYPE> environment variable."
    ),
    21614: (
        "WhatsApp template not found or not approved. "
        "Please verify the Content SID in your template configuration."
    ),
}

# Notification type -> approved Content template. Variable names map to "1", "2", "3"...
# Content SIDs come from WHATSAPP_CONTENT_SID_<TYPE>; empty means "send as session message".
WHATSAPP_TEMPLATES = {
    "STATEMENT_READY": ["ownerName", "month", "link"],
    "BOOKING_CREATED": ["propertyName", "checkInDate", "guestName"],
    "BOOKING_UPDATED": ["propertyName", "checkInDate", "status"],
    "BOOKING_REMINDER": ["propertyName", "checkInDate", "guestName"],
    "ISSUE_CREATED": ["issueTitle", "propertyName", "priority"],
    "ISSUE_ASSIGNED": ["issueTitle", "propertyName", "contactName"],
    "ISSUE_STATUS_CHANGED": ["issueTitle", "propertyName", "status"],
    "PAYOUT_MADE": ["amount", "currency", "reference"],
}


def get_whatsapp_template(notification_type: str, variables: dict) -> Optional[dict]:
    """Return {contentSid, contentVariables} when an approved template is configured"""
    names = WHATSAPP_TEMPLATES.get(notification_type)
    content_sid = os.getenv(f"WHATSAPP_CONTENT_SID_{notification_type}", "")
    if not names or not content_sid:
        return None

    content_variables = {
        str(index + 1): str(variables.get(name) or "") for index, name in enumerate(names)
    }
    return {"contentSid": content_sid, "contentVariables": content_variables}


def format_whatsapp_to(phone: str) -> str:
    """E.164 with Ghana (233) assumed, prefixed with whatsapp:"""
    cleaned = re.sub(r"[^\d+]", "", phone or "")
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]
    if not cleaned.startswith("233"):
        if cleaned.startswith("0"):
            cleaned = "233" + cleaned[1:]
        else:
            cleaned = "233" + cleaned
    return f"whatsapp:+{cleaned}"


def format_whatsapp_from(number: str) -> str:
    formatted = number.strip()
    if formatted.startswith("whatsapp:"):
        formatted = formatted[len("whatsapp:"):]
    if not formatted.startswith("+"):
        formatted = "+" + formatted
    return f"whatsapp:{formatted}"


def _as_enabled(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return True
    return str(value) == "true"


def _twilio_error(response: httpx.Response) -> str:
    text = response.text
    try:
        error_data = response.json()
    except ValueError:
        return text or "Failed to send WhatsApp message"
    code = error_data.get("code")
    return TWILIO_ERROR_MESSAGES.get(code) or error_data.get("message") or "Failed to send WhatsApp message"


async def send_whatsapp(
    db: Session,
    phone_number: str,
    message: str,
    action_url: Optional[str] = None,
    action_text: Optional[str] = None,
    media_url: Optional[list[str]] = None,
    config: Optional[dict] = None,
    template: Optional[dict] = None,
) -> dict:
    """
    Send a WhatsApp message via Twilio

    Args:
        config: Optional overrides {accountSid, authToken, fromNumber, whatsappEnabled, skipSend}
        template: Optional {contentSid, contentVariables} from get_whatsapp_template

    Returns:
        {"success": bool, "messageId": str} or {"success": False, "error": str}
    """
    config = config or {}
    resolved = resolve_config(db, WHATSAPP_SETTING_KEYS, config)

    account_sid = resolved.get("accountSid")
    auth_token = resolved.get("authToken")
    from_number = resolved.get("fromNumber")

    if not _as_enabled(resolved.get("whatsappEnabled")):
        return {"success": False, "error": "WhatsApp notifications are disabled"}

    if not account_sid or not auth_token or not from_number:
        return {"success": False, "error": CREDENTIALS_MISSING}

    to_number = format_whatsapp_to(phone_number)
    data = {
        "From": format_whatsapp_from(from_number),
        "To": to_number,
    }

    if template and template.get("contentSid"):
        data["ContentSid"] = template["contentSid"]
        if template.get("contentVariables"):
            data["ContentVariables"] = json.dumps(template["contentVariables"])
    else:
        body = message
        if action_url and action_text:
            body += f"\n\n{action_text}: {action_url}"
        data["Body"] = body

    if media_url:
        # One media URL per message
        data["MediaUrl"] = media_url[0]

    try:
        async with httpx.AsyncClient() as client:
            if config.get("skipSend"):
                response = await client.get(
                    f"{TWILIO_API_BASE}/Accounts/{account_sid}.json",
                    auth=(account_sid, auth_token),
                    timeout=10.0,
                )
                if not response.is_success:
                    return {
                        "success": False,
                        "error": f"Twilio API returned status {response.status_code}: {response.text}",
                    }
                return {"success": True, "messageId": "Credentials validated"}

            logger.info(
                f"💬 Sending WhatsApp to {to_number} (template: {bool(data.get('ContentSid'))})"
            )
            response = await client.post(
                f"{TWILIO_API_BASE}/Accounts/{account_sid}/Messages.json",
                auth=(account_sid, auth_token),
                data=data,
                timeout=10.0,
            )

        logger.info(f"📡 Twilio API response status: {response.status_code}")

        if not response.is_success:
            error_message = _twilio_error(response)
            logger.warning(f"⚠️ Twilio rejected WhatsApp message: {error_message}")
            return {"success": False, "error": error_message}

        result = response.json()
        if result.get("sid"):
            logger.info(f"✅ WhatsApp message sent: {result['sid']}")
            return {"success": True, "messageId": result["sid"]}
        return {"success": False, "error": "Unexpected response from Twilio API"}

    except Exception as e:
        logger.error(f"❌ WhatsApp sending failed: {str(e)}")
        return {"success": False, "error": str(e) or "Failed to send WhatsApp message"}
