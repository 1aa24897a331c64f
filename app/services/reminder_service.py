"""
Automated reminders, run hourly by the worker or the /reminders/run endpoint

- Booking reminders: UPCOMING bookings checking in about BOOKING_REMINDER_HOURS from now
- Overdue tasks: PENDING tasks past their due date, at most one reminder per task per day
- Pending issues: OPEN/IN_PROGRESS issues older than two days, one reminder per issue per day
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ..models import Booking, Issue, Notification, Property, Task
from .notification_service import display_date, send_booking_notification, send_notification
from .settings_service import get_bool_setting, get_setting

logger = logging.getLogger(__name__)

DEFAULT_BOOKING_REMINDER_HOURS = 24
ISSUE_PENDING_DAYS = 2


def _reminder_hours(db: Session) -> int:
    value = get_setting(db, "BOOKING_REMINDER_HOURS")
    try:
        return int(value) if value else DEFAULT_BOOKING_REMINDER_HOURS
    except ValueError:
        return DEFAULT_BOOKING_REMINDER_HOURS


def _already_notified(
    db: Session, owner_id: str, notification_type: str, key: str, value: str, since: Optional[datetime] = None
) -> bool:
    """True when a notification of this type already carries metadata[key] == value"""
    query = db.query(Notification).filter(
        Notification.owner_id == owner_id, Notification.type == notification_type
    )
    if since is not None:
        query = query.filter(Notification.created_at >= since)
    for notification in query.all():
        metadata = (notification.payload or {}).get("metadata") or {}
        if metadata.get(key) == value:
            return True
    return False


async def send_booking_reminders(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    hours = _reminder_hours(db)
    window_start = now + timedelta(hours=hours - 1)
    window_end = now + timedelta(hours=hours + 1)
    sent = errors = 0

    bookings = (
        db.query(Booking)
        .filter(Booking.status == "UPCOMING", Booking.check_in >= window_start, Booking.check_in <= window_end)
        .all()
    )
    for booking in bookings:
        try:
            if _already_notified(db, booking.owner_id, "BOOKING_REMINDER", "bookingId", booking.id):
                continue
            await send_booking_notification(db, booking.id, "reminder", booking.owner_id)
            sent += 1
        except Exception as e:
            logger.error(f"❌ Failed to send reminder for booking {booking.id}: {e}")
            db.rollback()
            errors += 1
    return {"sent": sent, "errors": errors}


async def send_task_reminders(db: Session, now: Optional[datetime] = None) -> dict:
    if not get_bool_setting(db, "TASK_REMINDER_ENABLED", default=True):
        return {"sent": 0, "errors": 0}

    now = now or datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    sent = errors = 0

    tasks = (
        db.query(Task)
        .options(joinedload(Task.property))
        .filter(Task.status == "PENDING", Task.due_at.isnot(None), Task.due_at < now)
        .all()
    )
    for task in tasks:
        prop: Property = task.property
        if not prop:
            continue
        try:
            if _already_notified(db, prop.owner_id, "TASK_UPDATE", "taskId", task.id, since=today):
                continue
            await send_notification(
                db,
                owner_id=prop.owner_id,
                notification_type="TASK_UPDATE",
                channels=["EMAIL"],
                title=f"Overdue Task: {task.title}",
                message=(
                    f'Task "{task.title}" for {prop.name} is overdue. '
                    f"Due date: {display_date(task.due_at)}"
                ),
                metadata={"taskId": task.id, "propertyId": task.property_id},
            )
            sent += 1
        except Exception as e:
            logger.error(f"❌ Failed to send reminder for task {task.id}: {e}")
            db.rollback()
            errors += 1
    return {"sent": sent, "errors": errors}


async def send_issue_reminders(db: Session, now: Optional[datetime] = None) -> dict:
    if not get_bool_setting(db, "ISSUE_REMINDER_ENABLED", default=True):
        return {"sent": 0, "errors": 0}

    now = now or datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    cutoff = now - timedelta(days=ISSUE_PENDING_DAYS)
    sent = errors = 0

    issues = (
        db.query(Issue)
        .options(joinedload(Issue.property))
        .filter(Issue.status.in_(("OPEN", "IN_PROGRESS")), Issue.created_at < cutoff)
        .all()
    )
    for issue in issues:
        prop: Property = issue.property
        if not prop:
            continue
        try:
            if _already_notified(db, prop.owner_id, "ISSUE_STATUS_CHANGED", "issueId", issue.id, since=today):
                continue
            await send_notification(
                db,
                owner_id=prop.owner_id,
                notification_type="ISSUE_STATUS_CHANGED",
                channels=["EMAIL"],
                title=f"Pending Issue Reminder: {issue.title}",
                message=(
                    f'Issue "{issue.title}" for {prop.name} has been pending for more than '
                    f"{ISSUE_PENDING_DAYS} days. Current status: {issue.status}"
                ),
                metadata={"issueId": issue.id, "propertyId": issue.property_id},
            )
            sent += 1
        except Exception as e:
            logger.error(f"❌ Failed to send reminder for issue {issue.id}: {e}")
            db.rollback()
            errors += 1
    return {"sent": sent, "errors": errors}


async def run_all(db: Session, now: Optional[datetime] = None) -> dict:
    results = {
        "bookings": await send_booking_reminders(db, now),
        "tasks": await send_task_reminders(db, now),
        "issues": await send_issue_reminders(db, now),
    }
    logger.info(f"⏰ Reminders run: {results}")
    return results
