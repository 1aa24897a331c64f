"""
Template rendering for SMS and email notifications
Templates are stored in the database and use {{variableName}} placeholders.
"""

import logging
import re
from typing import Optional

from sqlalchemy.orm import Session

from ..models import EmailTemplate, SmsTemplate

logger = logging.getLogger(__name__)

# Expected variables per SMS template type
SMS_TEMPLATE_VARIABLES = {
    "booking_confirmation": [
        "guestName",
        "propertyName",
        "checkInDate",
        "checkOutDate",
        "nights",
        "totalPayout",
        "currency",
        "bookingId",
    ],
    "booking_reminder": [
        "guestName",
        "propertyName",
        "checkInDate",
        "checkOutDate",
        "nights",
        "bookingId",
    ],
    "statement": [
        "ownerName",
        "periodStart",
        "periodEnd",
        "totalRevenue",
        "totalExpenses",
        "commission",
        "netBalance",
        "currency",
    ],
    "issue_notification": [
        "ownerName",
        "propertyName",
        "issueTitle",
        "issueDescription",
        "issueStatus",
        "issuePriority",
        "issueId",
    ],
    "payout_notification": ["ownerName", "amount", "currency", "payoutDate", "payoutId"],
    "task_assignment": [
        "ownerName",
        "propertyName",
        "taskTitle",
        "taskDescription",
        "taskDueDate",
        "taskId",
    ],
}

DEFAULT_SMS_TEMPLATES = [
    {
        "name": "Booking Confirmation",
        "type": "booking_confirmation",
        "body": (
            "Hi {{guestName}}, your booking at {{propertyName}} is confirmed! Check-in: {{checkInDate}}, "
            "Check-out: {{checkOutDate}}. Total: {{currency}} {{totalPayout}}. Booking ID: {{bookingId}}"
        ),
    },
    {
        "name": "Booking Reminder",
        "type": "booking_reminder",
        "body": (
            "Reminder: Your stay at {{propertyName}} starts {{checkInDate}}. "
            "Check-out: {{checkOutDate}} ({{nights}} nights). Booking ID: {{bookingId}}"
        ),
    },
    {
        "name": "Statement Notification",
        "type": "statement",
        "body": (
            "Hi {{ownerName}}, your statement for {{periodStart}} to {{periodEnd}} is ready. "
            "Revenue: {{currency}} {{totalRevenue}}, Expenses: {{currency}} {{totalExpenses}}, "
            "Net: {{currency}} {{netBalance}}"
        ),
    },
    {
        "name": "Issue Notification",
        "type": "issue_notification",
        "body": (
            "New issue at {{propertyName}}: {{issueTitle}}. Status: {{issueStatus}}, "
            "Priority: {{issuePriority}}. Issue ID: {{issueId}}"
        ),
    },
    {
        "name": "Payout Notification",
        "type": "payout_notification",
        "body": (
            "Hi {{ownerName}}, payout of {{currency}} {{amount}} processed on {{payoutDate}}. "
            "Payout ID: {{payoutId}}. Funds will arrive in 3-5 business days."
        ),
    },
    {
        "name": "Task Assignment",
        "type": "task_assignment",
        "body": (
            "New task assigned: {{taskTitle}} at {{propertyName}}. Due: {{taskDueDate}}. "
            "Task ID: {{taskId}}"
        ),
    },
]


def _as_text(value) -> str:
    return "" if value is None else str(value)


def replace_sms_variables(text: str, variables: dict) -> str:
    """Exact {{key}} replacement"""
    result = text
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", _as_text(value))
    return result


def replace_email_variables(text: str, variables: dict) -> str:
    """{{ key }} replacement, whitespace inside the braces allowed"""
    result = text
    for key, value in variables.items():
        pattern = re.compile(r"\{\{\s*" + re.escape(key) + r"\s*\}\}")
        result = pattern.sub(lambda _: _as_text(value), result)
    return result


def get_sms_template_variables(template_type: str) -> list[str]:
    return SMS_TEMPLATE_VARIABLES.get(template_type, [])


def render_sms_template(db: Session, template_id: str, variables: dict) -> Optional[str]:
    template = db.query(SmsTemplate).filter(SmsTemplate.id == template_id).first()
    if not template or not template.is_active:
        return None
    return replace_sms_variables(template.body, variables)


def render_sms_template_by_type(db: Session, template_type: str, variables: dict) -> Optional[str]:
    """Render the default active SMS template for the type, None when there is none"""
    try:
        template = (
            db.query(SmsTemplate)
            .filter(
                SmsTemplate.type == template_type,
                SmsTemplate.is_default.is_(True),
                SmsTemplate.is_active.is_(True),
            )
            .first()
        )
    except Exception as e:
        logger.error(f"❌ Failed to load SMS template '{template_type}': {e}")
        return None
    if not template:
        return None
    return replace_sms_variables(template.body, variables)


def render_email_template(db: Session, template_id: str, variables: dict) -> Optional[dict]:
    template = db.query(EmailTemplate).filter(EmailTemplate.id == template_id).first()
    if not template or not template.is_active:
        return None
    return {
        "subject": replace_email_variables(template.subject, variables),
        "body": replace_email_variables(template.body, variables),
    }


def render_email_template_by_type(db: Session, template_type: str, variables: dict) -> Optional[dict]:
    """Render the default active email template for the type, None when there is none"""
    try:
        template = (
            db.query(EmailTemplate)
            .filter(
                EmailTemplate.type == template_type,
                EmailTemplate.is_default.is_(True),
                EmailTemplate.is_active.is_(True),
            )
            .first()
        )
    except Exception as e:
        logger.error(f"❌ Failed to load email template '{template_type}': {e}")
        return None
    if not template:
        return None
    return {
        "subject": replace_email_variables(template.subject, variables),
        "body": replace_email_variables(template.body, variables),
    }


def seed_default_sms_templates(db: Session, created_by_id: Optional[str] = None) -> int:
    """Create the stock SMS templates whose type has none yet; returns how many were added"""
    created = 0
    for definition in DEFAULT_SMS_TEMPLATES:
        exists = db.query(SmsTemplate).filter(SmsTemplate.type == definition["type"]).first()
        if exists:
            continue
        db.add(
            SmsTemplate(
                name=definition["name"],
                type=definition["type"],
                body=definition["body"],
                is_default=True,
                is_active=True,
                created_by_id=created_by_id,
            )
        )
        created += 1
    db.commit()
    if created:
        logger.info(f"🌱 Seeded {created} default SMS templates")
    return created
