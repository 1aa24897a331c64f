"""
Admin settings: channel credentials, notification toggles, branding, FX rates
and AI provider keys, plus channel test endpoints that accept unsaved form values.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..currency import clear_fx_rates_cache, get_fx_rates
from ..database import get_db
from ..email_service import SMTPConfigurationError, send_email
from ..email_templates import generate_email_template
from ..models import Setting, User
from ..security_utils import decrypt_value
from ..services.settings_service import SECRET_SETTING_KEYS, upsert_setting
from ..services.sms_service import send_sms
from ..services.whatsapp_service import send_whatsapp

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["Settings"])

# frontend key -> (DB key, category)
SETTING_KEY_MAP = {
    # SMS
    "deywuroUsername": ("DEYWURO_USERNAME", "sms"),
    "deywuroPassword": ("DEYWURO_PASSWORD", "sms"),
    "deywuroSource": ("DEYWURO_SOURCE", "sms"),
    "smsEnabled": ("SMS_ENABLED", "sms"),
    # WhatsApp
    "twilioAccountSid": ("TWILIO_ACCOUNT_SID", "whatsapp"),
    "twilioAuthToken": ("TWILIO_AUTH_TOKEN", "whatsapp"),
    "twilioWhatsAppNumber": ("TWILIO_WHATSAPP_NUMBER", "whatsapp"),
    "whatsappEnabled": ("WHATSAPP_ENABLED", "whatsapp"),
    # Email
    "smtpHost": ("SMTP_HOST", "email"),
    "smtpPort": ("SMTP_PORT", "email"),
    "smtpUser": ("SMTP_USER", "email"),
    "smtpPassword": ("SMTP_PASSWORD", "email"),
    "smtpFrom": ("SMTP_FROM", "email"),
    "emailEnabled": ("EMAIL_ENABLED", "email"),
    # Notification toggles
    "notifyOnIssueCreated": ("NOTIFY_ON_ISSUE_CREATED", "notifications"),
    "notifyOnIssueAssigned": ("NOTIFY_ON_ISSUE_ASSIGNED", "notifications"),
    "notifyOnIssueStatusChanged": ("NOTIFY_ON_ISSUE_STATUS_CHANGED", "notifications"),
    "notifyOnIssueCommented": ("NOTIFY_ON_ISSUE_COMMENTED", "notifications"),
    "notifyOnBookingCreated": ("NOTIFY_ON_BOOKING_CREATED", "notifications"),
    "notifyOnBookingUpdated": ("NOTIFY_ON_BOOKING_UPDATED", "notifications"),
    "sendSmsForUrgentIssues": ("SEND_SMS_FOR_URGENT_ISSUES", "notifications"),
    # Reminders
    "bookingReminderHours": ("BOOKING_REMINDER_HOURS", "reminders"),
    "taskReminderEnabled": ("TASK_REMINDER_ENABLED", "reminders"),
    "issueReminderEnabled": ("ISSUE_REMINDER_ENABLED", "reminders"),
    "paymentReminderEnabled": ("PAYMENT_REMINDER_ENABLED", "reminders"),
    # General
    "appUrl": ("NEXT_PUBLIC_APP_URL", "general"),
    "logo": ("APP_LOGO", "general"),
    "favicon": ("APP_FAVICON", "general"),
    "themeColor": ("THEME_COLOR", "general"),
    "fxRateGHS": ("FX_RATE_GHS", "general"),
    "fxRateUSD": ("FX_RATE_USD", "general"),
    "fxRateFormat": ("FX_RATE_FORMAT", "general"),
    # AI
    "aiProvider": ("AI_PROVIDER", "ai"),
    "openaiApiKey": ("OPENAI_API_KEY", "ai"),
    "anthropicApiKey": ("ANTHROPIC_API_KEY", "ai"),
    "geminiApiKey": ("GEMINI_API_KEY", "ai"),
    "aiModel": ("AI_MODEL", "ai"),
}

FX_KEYS = ("fxRateGHS", "fxRateUSD", "fxRateFormat")


def setting_value(key: str, value: Any, payload: dict) -> str:
    """Serialize a posted value the way it is stored"""
    if key == "fxRateGHS" and payload.get("fxRateFormat") == "usdToGhs":
        try:
            ghs_per_usd = float(value)
        except (TypeError, ValueError):
            ghs_per_usd = 0
        if ghs_per_usd > 0:
            return f"{1 / ghs_per_usd:.6f}"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value or "")


@router.get("")
async def get_all_settings(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows = db.query(Setting).order_by(Setting.category.asc(), Setting.key.asc()).all()
    return {
        row.key: decrypt_value(row.value) if row.key in SECRET_SETTING_KEYS else row.value
        for row in rows
    }


@router.post("")
async def save_settings(
    payload: dict[str, Any],
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    saved = 0
    for key, value in payload.items():
        mapping = SETTING_KEY_MAP.get(key)
        if not mapping:
            continue
        db_key, category = mapping
        upsert_setting(db, db_key, setting_value(key, value, payload), category)
        saved += 1
    db.commit()

    if any(key in payload for key in FX_KEYS):
        clear_fx_rates_cache()

    logger.info(f"⚙️ {saved} settings saved by {current_user.email}")
    return {"success": True}


@router.get("/fx-rates")
async def fx_rates(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return get_fx_rates(db)


# ============================================================================
# CHANNEL TESTS
# ============================================================================


class TestSmsRequest(BaseModel):
    phoneNumber: str
    message: Optional[str] = None
    deywuroUsername: Optional[str] = None
    deywuroPassword: Optional[str] = None
    deywuroSource: Optional[str] = None


class TestEmailRequest(BaseModel):
    email: EmailStr
    smtpHost: Optional[str] = None
    smtpPort: Optional[str] = None
    smtpUser: Optional[str] = None
    smtpPassword: Optional[str] = None
    smtpFrom: Optional[str] = None


class TestWhatsAppRequest(BaseModel):
    phoneNumber: str
    message: Optional[str] = None
    twilioAccountSid: Optional[str] = None
    twilioAuthToken: Optional[str] = None
    twilioWhatsAppNumber: Optional[str] = None


def _result_or_error(result: dict, success_message: str) -> dict:
    if not result.get("success"):
        raise HTTPException(status_code=400, detail=result.get("error") or "Test failed")
    return {"success": True, "message": success_message, "messageId": result.get("messageId")}


@router.post("/test-sms")
async def test_sms(
    data: TestSmsRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    # A test always goes out, even with the channel switched off
    config = {
        "username": data.deywuroUsername,
        "password": data.deywuroPassword,
        "source": data.deywuroSource,
        "smsEnabled": True,
    }
    result = await send_sms(
        db,
        data.phoneNumber,
        data.message or "This is a test SMS from HostHub. Your SMS settings are working!",
        config=config,
    )
    return _result_or_error(result, "Test SMS sent successfully")


@router.post("/test-email")
async def test_email(
    data: TestEmailRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    config = {
        "host": data.smtpHost,
        "port": data.smtpPort,
        "user": data.smtpUser,
        "password": data.smtpPassword,
        "from": data.smtpFrom,
        "emailEnabled": True,
    }
    html = generate_email_template(
        "Test Email",
        "This is a test email from HostHub. Your SMTP settings are working correctly!",
    )
    try:
        result = await send_email(db, data.email, "HostHub Test Email", html, config=config)
    except SMTPConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _result_or_error(result, f"Test email sent to {data.email}")


@router.post("/test-whatsapp")
async def test_whatsapp(
    data: TestWhatsAppRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    config = {
        "accountSid": data.twilioAccountSid,
        "authToken": data.twilioAuthToken,
        "fromNumber": data.twilioWhatsAppNumber,
        "whatsappEnabled": True,
    }
    result = await send_whatsapp(
        db,
        data.phoneNumber,
        data.message or "This is a test WhatsApp message from HostHub. Your WhatsApp settings are working!",
        config=config,
    )
    return _result_or_error(result, "Test WhatsApp message sent successfully")
