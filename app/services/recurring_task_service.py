"""
Recurring task engine
Turns due RecurringTask templates into concrete PENDING tasks and advances
their schedule.
"""

import calendar
import logging
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..models import RecurringTask, Task

logger = logging.getLogger(__name__)

FREQUENCIES = ("DAILY", "WEEKLY", "MONTHLY", "QUARTERLY", "YEARLY")
MONTHS_PER_PERIOD = {"MONTHLY": 1, "QUARTERLY": 3, "YEARLY": 12}


def _clamp_day(value: datetime, day_of_month: int) -> datetime:
    days_in_month = calendar.monthrange(value.year, value.month)[1]
    return value.replace(day=min(day_of_month, days_in_month))


def _weekday_sunday_first(value: datetime) -> int:
    """0 = Sunday ... 6 = Saturday"""
    return (value.weekday() + 1) % 7


def first_run_date(
    frequency: str, start: datetime, day_of_week: Optional[int] = None, day_of_month: Optional[int] = None
) -> datetime:
    """First occurrence on or after a new template's start date"""
    if frequency == "WEEKLY" and day_of_week is not None:
        days_to_add = (day_of_week - _weekday_sunday_first(start)) % 7 or 7
        return start + timedelta(days=days_to_add)
    if frequency in MONTHS_PER_PERIOD and day_of_month:
        return _clamp_day(start, day_of_month)
    return start


def calculate_next_run_date(
    frequency: str,
    interval: int,
    last_run: datetime,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
) -> datetime:
    """Next run after last_run; month arithmetic clamps to the month's length"""
    interval = max(interval or 1, 1)

    if frequency == "DAILY":
        return last_run + timedelta(days=interval)

    if frequency == "WEEKLY":
        if day_of_week is not None:
            days_to_add = (day_of_week - _weekday_sunday_first(last_run)) % 7 or 7
            return last_run + timedelta(days=days_to_add)
        return last_run + timedelta(weeks=interval)

    if frequency in MONTHS_PER_PERIOD:
        next_run = last_run + relativedelta(months=MONTHS_PER_PERIOD[frequency] * interval)
        if day_of_month:
            next_run = _clamp_day(next_run, day_of_month)
        return next_run

    raise ValueError(f"Unsupported frequency: {frequency}")


def generate_recurring_tasks(db: Session, now: Optional[datetime] = None) -> dict:
    """Create today's tasks from every due template. Returns {generated, errors}"""
    today = (now or datetime.utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
    end_of_day = today.replace(hour=23, minute=59, second=59)
    generated = 0
    errors: list[str] = []

    due = (
        db.query(RecurringTask)
        .options(joinedload(RecurringTask.property))
        .filter(
            RecurringTask.is_active.is_(True),
            RecurringTask.next_run_date <= end_of_day,
            or_(RecurringTask.end_date.is_(None), RecurringTask.end_date >= today),
        )
        .all()
    )
    logger.info(f"🔄 {len(due)} recurring tasks due for {today:%Y-%m-%d}")

    for template in due:
        if template.start_date and template.start_date > end_of_day:
            continue
        if not template.property_id or template.property is None:
            errors.append(f'Recurring task "{template.title}" has no property assigned')
            continue

        try:
            db.add(
                Task(
                    property_id=template.property_id,
                    recurring_task_id=template.id,
                    type=template.type,
                    title=template.title,
                    description=template.description,
                    assigned_to_user_id=template.assigned_to_user_id,
                    scheduled_at=today,
                    due_at=end_of_day,
                    cost_estimate=template.cost_estimate,
                    status="PENDING",
                )
            )
            template.next_run_date = calculate_next_run_date(
                template.frequency, template.interval, today, template.day_of_week, template.day_of_month
            )
            template.last_generated_at = datetime.utcnow()
            template.total_generated = (template.total_generated or 0) + 1
            db.commit()
            generated += 1
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to generate task from recurring task {template.id}: {e}")
            errors.append(f'Failed to generate task from "{template.title}": {e}')

    logger.info(f"✅ Generated {generated} tasks from recurring templates ({len(errors)} errors)")
    return {"generated": generated, "errors": errors}
