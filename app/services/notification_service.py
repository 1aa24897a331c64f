"""
Unified Notification Service
Fans one event out to the owner's EMAIL / SMS / WHATSAPP channels and records
one Notification row per channel attempt (PENDING -> SENT | FAILED).

Channel failures are recorded on the row and never propagate to the caller.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..email_service import render_branded_email, send_email
from ..models import Booking, InventoryItem, Issue, Notification, Owner, Payout, Property, Statement
from .settings_service import get_app_base_url, get_bool_setting
from .sms_service import send_sms
from .template_service import render_email_template_by_type, render_sms_template_by_type
from .whatsapp_service import get_whatsapp_template, send_whatsapp

logger = logging.getLogger(__name__)

CHANNELS = ("EMAIL", "SMS", "WHATSAPP")

MISSING_CONTACT_ERRORS = {
    "SMS": "No phone number available for owner",
    "WHATSAPP": "No WhatsApp number available for owner",
    "EMAIL": "No email address available for owner",
}

ISSUE_EVENT_TYPES = {
    "created": "ISSUE_CREATED",
    "assigned": "ISSUE_ASSIGNED",
    "status_changed": "ISSUE_STATUS_CHANGED",
    "commented": "ISSUE_COMMENTED",
}

ISSUE_EVENT_SETTINGS = {
    "created": "NOTIFY_ON_ISSUE_CREATED",
    "assigned": "NOTIFY_ON_ISSUE_ASSIGNED",
    "status_changed": "NOTIFY_ON_ISSUE_STATUS_CHANGED",
    "commented": "NOTIFY_ON_ISSUE_COMMENTED",
}

BOOKING_EVENT_TYPES = {
    "created": "BOOKING_CREATED",
    "updated": "BOOKING_UPDATED",
    "reminder": "BOOKING_REMINDER",
}


def display_date(value: Optional[datetime]) -> str:
    """Short M/D/YYYY date used in notification text"""
    if not value:
        return "N/A"
    return f"{value.month}/{value.day}/{value.year}"


def _property_label(prop) -> str:
    return (prop.nickname or prop.name) if prop else ""


def _finish(db: Session, record: Notification, result: dict) -> None:
    record.status = "SENT" if result.get("success") else "FAILED"
    record.sent_at = datetime.utcnow() if result.get("success") else None
    record.error_message = result.get("error")
    db.commit()


async def _deliver_channel(
    db: Session,
    channel: str,
    recipient: str,
    notification_type: str,
    title: str,
    message: str,
    html_content: Optional[str],
    action_url: Optional[str],
    action_text: Optional[str],
    template_type: Optional[str],
    template_variables: Optional[dict],
) -> dict:
    if channel == "SMS":
        sms_message = message
        if template_type and template_variables:
            rendered = render_sms_template_by_type(db, template_type, template_variables)
            if rendered:
                sms_message = rendered
        return await send_sms(db, recipient, sms_message)

    if channel == "WHATSAPP":
        whatsapp_message = message
        if template_type and template_variables:
            rendered = render_sms_template_by_type(db, template_type, template_variables)
            if rendered:
                whatsapp_message = rendered
        variables = dict(template_variables or {})
        if action_url:
            variables["link"] = action_url
        content_template = get_whatsapp_template(notification_type, variables)
        return await send_whatsapp(
            db,
            recipient,
            whatsapp_message,
            action_url=action_url,
            action_text=action_text,
            template=content_template,
        )

    subject = title
    html = html_content
    if template_type and template_variables:
        rendered = render_email_template_by_type(db, template_type, template_variables)
        if rendered:
            subject = rendered["subject"]
            html = render_branded_email(
                db, rendered["body"], title=subject, action_url=action_url, action_text=action_text
            )
    if not html:
        html = render_branded_email(db, message, title=subject, action_url=action_url, action_text=action_text)
    return await send_email(db, recipient, subject, html)


async def send_notification(
    db: Session,
    owner_id: str,
    notification_type: str,
    channels: list[str],
    title: str,
    message: str,
    html_content: Optional[str] = None,
    action_url: Optional[str] = None,
    action_text: Optional[str] = None,
    metadata: Optional[dict] = None,
    template_type: Optional[str] = None,
    template_variables: Optional[dict] = None,
) -> list[dict]:
    """
    Send one notification to an owner over each requested channel

    Args:
        db: Database session
        owner_id: Recipient owner
        notification_type: e.g. ISSUE_CREATED, BOOKING_CREATED, PAYOUT_MADE, STATEMENT_READY
        channels: Any of EMAIL, SMS, WHATSAPP
        template_type: DB template type to render (e.g. booking_confirmation)
        template_variables: Values for the {{placeholders}}

    Returns:
        One {channel, notificationId, status, error} entry per channel

    Raises:
        ValueError: If the owner does not exist
    """
    owner = db.query(Owner).filter(Owner.id == owner_id).first()
    if not owner:
        raise ValueError(f"Owner with id {owner_id} not found")

    recipients = {
        "EMAIL": (owner.user.email if owner.user else None) or owner.email,
        "SMS": owner.phone_number or owner.whatsapp_number,
        "WHATSAPP": owner.whatsapp_number or owner.phone_number,
    }

    results = []
    for channel in channels:
        record = Notification(
            owner_id=owner_id,
            type=notification_type,
            channel=channel,
            status="PENDING",
            payload={
                "title": title,
                "message": message,
                "htmlContent": html_content,
                "actionUrl": action_url,
                "actionText": action_text,
                "metadata": metadata,
            },
        )
        db.add(record)
        db.commit()
        db.refresh(record)

        try:
            recipient = recipients.get(channel)
            if not recipient:
                result = {"success": False, "error": MISSING_CONTACT_ERRORS.get(channel, "Unsupported channel")}
            else:
                logger.info(f"🔔 Sending {notification_type} via {channel} to owner {owner_id}")
                result = await _deliver_channel(
                    db,
                    channel,
                    recipient,
                    notification_type,
                    title,
                    message,
                    html_content,
                    action_url,
                    action_text,
                    template_type,
                    template_variables,
                )
            _finish(db, record, result)
        except Exception as e:
            logger.error(f"❌ {channel} notification {record.id} failed: {e}")
            db.rollback()
            record = db.query(Notification).filter(Notification.id == record.id).first()
            _finish(db, record, {"success": False, "error": str(e)})

        if record.status == "SENT":
            logger.info(f"✅ {channel} notification {record.id} sent")
        else:
            logger.warning(f"⚠️ {channel} notification {record.id} failed: {record.error_message}")

        results.append(
            {
                "channel": channel,
                "notificationId": record.id,
                "status": record.status,
                "error": record.error_message,
            }
        )
    return results


async def resend_notification(db: Session, notification: Notification) -> list[dict]:
    """Dispatch a stored notification's payload again on its original channel"""
    payload = notification.payload or {}
    return await send_notification(
        db,
        owner_id=notification.owner_id,
        notification_type=notification.type,
        channels=[notification.channel],
        title=payload.get("title") or "Notification",
        message=payload.get("message") or "",
        html_content=payload.get("htmlContent"),
        action_url=payload.get("actionUrl"),
        action_text=payload.get("actionText"),
        metadata=payload.get("metadata"),
    )


# ============================================================================
# EVENT HELPERS
# ============================================================================


async def send_issue_notification(
    db: Session, issue_id: str, event: str, recipient_ids: list[str]
) -> None:
    """Issue created / assigned / status_changed / commented"""
    issue = db.query(Issue).filter(Issue.id == issue_id).first()
    if not issue or not recipient_ids:
        return

    if not get_bool_setting(db, ISSUE_EVENT_SETTINGS[event], default=True):
        logger.info(f"🔔 Issue {event} notifications disabled, skipping issue {issue_id}")
        return

    property_name = _property_label(issue.property)
    base_url = get_app_base_url(db)

    if event == "created":
        title = f"New Issue: {issue.title}"
        message = (
            f'A new issue "{issue.title}" has been reported for {property_name}. '
            f"Priority: {issue.priority}"
        )
    elif event == "assigned":
        title = f"Issue Assigned: {issue.title}"
        message = (
            f'You have been assigned to issue "{issue.title}" for {property_name}. '
            f"Priority: {issue.priority}"
        )
    elif event == "status_changed":
        title = f"Issue Status Updated: {issue.title}"
        message = (
            f'The status of issue "{issue.title}" for {property_name} has been updated to {issue.status}.'
        )
    else:
        title = f"New Comment on Issue: {issue.title}"
        message = f'A new comment has been added to issue "{issue.title}" for {property_name}.'

    channels = ["EMAIL"]
    if issue.priority in ("URGENT", "HIGH") and get_bool_setting(db, "SEND_SMS_FOR_URGENT_ISSUES", default=True):
        channels.append("SMS")

    first_owner = db.query(Owner).filter(Owner.id == recipient_ids[0]).first()
    template_variables = {
        "ownerName": first_owner.name if first_owner else "",
        "propertyName": property_name,
        "issueTitle": issue.title,
        "issueDescription": issue.description or "",
        "issueStatus": issue.status,
        "issuePriority": issue.priority,
        "issueId": issue.id,
        "contactName": issue.assigned_contact.name if issue.assigned_contact else "",
        "status": issue.status,
        "priority": issue.priority,
    }

    for owner_id in recipient_ids:
        await send_notification(
            db,
            owner_id=owner_id,
            notification_type=ISSUE_EVENT_TYPES[event],
            channels=channels,
            title=title,
            message=message,
            action_url=f"{base_url}/admin/issues/{issue_id}",
            action_text="View Issue",
            metadata={"issueId": issue_id, "event": event, "propertyId": issue.property_id},
            template_type="issue_notification",
            template_variables=template_variables,
        )


async def send_booking_notification(db: Session, booking_id: str, event: str, owner_id: str) -> None:
    """Booking created / updated / reminder, emailed to the owner"""
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        return

    if event == "created" and not get_bool_setting(db, "NOTIFY_ON_BOOKING_CREATED", default=True):
        return
    if event == "updated" and not get_bool_setting(db, "NOTIFY_ON_BOOKING_UPDATED", default=True):
        return

    property_name = _property_label(booking.property)
    base_url = get_app_base_url(db)

    if event == "created":
        title = f"New Booking: {property_name}"
        message = (
            f"A new booking has been created for {property_name}. "
            f"Guest: {booking.guest_name or 'N/A'}, Check-in: {display_date(booking.check_in)}"
        )
    elif event == "updated":
        title = f"Booking Updated: {property_name}"
        message = f"A booking for {property_name} has been updated."
    else:
        title = f"Booking Reminder: {property_name}"
        message = f"Reminder: You have a booking at {property_name} on {display_date(booking.check_in)}."

    owner = db.query(Owner).filter(Owner.id == owner_id).first()
    template_variables = {
        "ownerName": owner.name if owner else "Property Owner",
        "guestName": booking.guest_name or "Guest",
        "propertyName": property_name,
        "checkInDate": display_date(booking.check_in),
        "checkOutDate": display_date(booking.check_out),
        "nights": str(booking.nights),
        "totalPayout": f"{booking.total_payout:.2f}",
        "currency": booking.currency,
        "bookingId": booking.id,
        "status": booking.status,
    }

    await send_notification(
        db,
        owner_id=owner_id,
        notification_type=BOOKING_EVENT_TYPES[event],
        channels=["EMAIL"],
        title=title,
        message=message,
        action_url=f"{base_url}/admin/bookings/{booking_id}",
        action_text="View Booking",
        metadata={"bookingId": booking_id, "event": event, "propertyId": booking.property_id},
        template_type="booking_reminder" if event == "reminder" else "booking_confirmation",
        template_variables=template_variables,
    )


async def send_payout_notification(db: Session, payout_id: str, owner_id: str) -> None:
    payout = db.query(Payout).filter(Payout.id == payout_id).first()
    if not payout:
        return

    base_url = get_app_base_url(db)
    owner = db.query(Owner).filter(Owner.id == owner_id).first()

    via = f" via {payout.method}" if payout.method else ""
    ref = f" (Ref: {payout.reference})" if payout.reference else ""
    message = f"A payout of {payout.currency} {payout.amount:.2f} has been processed{via}{ref}."

    await send_notification(
        db,
        owner_id=owner_id,
        notification_type="PAYOUT_MADE",
        channels=["EMAIL"],
        title="Payout Processed",
        message=message,
        action_url=f"{base_url}/admin/owners/{owner_id}",
        action_text="View Owner Details",
        metadata={
            "payoutId": payout_id,
            "amount": payout.amount,
            "currency": payout.currency,
            "method": payout.method,
        },
        template_type="payout_notification",
        template_variables={
            "ownerName": owner.name if owner else "",
            "amount": f"{payout.amount:.2f}",
            "currency": payout.currency,
            "payoutDate": display_date(payout.created_at),
            "payoutId": payout.id,
            "reference": payout.reference or "",
        },
    )


async def send_low_stock_notification(db: Session, item_id: str) -> None:
    """Tells the property owner a consumable dropped to its minimum"""
    item = db.query(InventoryItem).filter(InventoryItem.id == item_id).first()
    if not item:
        return
    prop = db.query(Property).filter(Property.id == item.property_id).first()
    if not prop or not prop.owner_id:
        return

    property_name = _property_label(prop)
    unit = f" {item.unit}" if item.unit else ""
    message = (
        f"{item.name} at {property_name} is running low: {item.quantity}{unit} left "
        f"(minimum {item.minimum_quantity}{unit})."
    )

    await send_notification(
        db,
        owner_id=prop.owner_id,
        notification_type="INVENTORY_LOW_STOCK",
        channels=["EMAIL", "SMS"],
        title=f"Low Stock: {item.name}",
        message=message,
        action_url=f"{get_app_base_url(db)}/owner/properties/{prop.id}",
        action_text="View Property",
        metadata={
            "inventoryItemId": item.id,
            "propertyId": prop.id,
            "quantity": item.quantity,
            "minimumQuantity": item.minimum_quantity,
        },
    )


async def send_statement_ready_notification(db: Session, statement_id: str) -> None:
    statement = db.query(Statement).filter(Statement.id == statement_id).first()
    if not statement or not statement.owner:
        return

    owner = statement.owner
    base_url = get_app_base_url(db)
    period_start = statement.period_start.strftime("%Y-%m-%d")
    period_end = statement.period_end.strftime("%Y-%m-%d")
    period_label = f"{period_start} to {period_end}"
    action_url = f"{base_url}/owner/statements/{statement_id}"

    channels = ["EMAIL"]
    if owner.phone_number:
        channels.append("SMS")
    if owner.whatsapp_number:
        channels.append("WHATSAPP")

    await send_notification(
        db,
        owner_id=owner.id,
        notification_type="STATEMENT_READY",
        channels=channels,
        title="Statement Ready",
        message=(
            f"Your statement for {period_label} is ready. "
            f"Net earnings: {statement.display_currency} {statement.net_to_owner:.2f}."
        ),
        action_url=action_url,
        action_text="View Statement",
        metadata={
            "statementId": statement_id,
            "periodStart": statement.period_start.isoformat(),
            "periodEnd": statement.period_end.isoformat(),
            "netToOwner": statement.net_to_owner,
            "currency": statement.display_currency,
        },
        template_type="statement_ready",
        template_variables={
            "ownerName": owner.name or "",
            "periodLabel": period_label,
            "netAmount": f"{statement.net_to_owner:.2f}",
            "currency": statement.display_currency,
            "statementId": statement.id,
            "periodStart": period_start,
            "periodEnd": period_end,
            "month": statement.period_start.strftime("%B %Y"),
            "link": action_url,
        },
    )


async def run_notification_job(helper: Callable[..., Any], *args) -> None:
    """
    Background-task entry point: runs an event helper on its own session.
    Errors are logged and never reach the request that scheduled the job.
    """
    db = SessionLocal()
    try:
        await helper(db, *args)
    except Exception as e:
        logger.error(f"❌ Background notification {helper.__name__} failed: {e}")
    finally:
        db.close()
