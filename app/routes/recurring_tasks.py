import logging
from datetime import datetime
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session, joinedload

from ..auth import require_admin, verify_cron_or_admin
from ..database import get_db
from ..models import Property, RecurringTask, Task, User
from ..services.recurring_task_service import FREQUENCIES, first_run_date, generate_recurring_tasks
from ..shared.serializers import row_to_dict
from ..shared.validators import naive_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recurring-tasks", tags=["Recurring Tasks"])

DAYS_OF_WEEK = ("SUNDAY", "MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY")


def _day_of_week(value):
    """Accepts 0-6 (Sunday first) or a day name"""
    if value is None:
        return None
    if isinstance(value, str):
        if value.upper() not in DAYS_OF_WEEK:
            raise ValueError("Invalid day of week")
        return DAYS_OF_WEEK.index(value.upper())
    if not 0 <= value <= 6:
        raise ValueError("Invalid day of week")
    return value


class RecurringTaskCreate(BaseModel):
    propertyId: str
    title: str
    description: Optional[str] = None
    type: str = "MAINTENANCE"
    frequency: str
    interval: int = 1
    dayOfWeek: Optional[Union[int, str]] = None
    dayOfMonth: Optional[int] = None
    startDate: datetime
    endDate: Optional[datetime] = None
    assignedToUserId: Optional[str] = None
    costEstimate: Optional[float] = None
    isActive: bool = True

    @field_validator("frequency")
    @classmethod
    def check_frequency(cls, v):
        if v not in FREQUENCIES:
            raise ValueError("Invalid frequency")
        return v

    @field_validator("dayOfWeek")
    @classmethod
    def check_day_of_week(cls, v):
        return _day_of_week(v)

    @field_validator("dayOfMonth")
    @classmethod
    def check_day_of_month(cls, v):
        if v is not None and not 1 <= v <= 31:
            raise ValueError("Day of month must be between 1 and 31")
        return v

    @field_validator("interval")
    @classmethod
    def check_interval(cls, v):
        if v < 1:
            raise ValueError("interval must be at least 1")
        return v

    @field_validator("startDate", "endDate")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)


class RecurringTaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    frequency: Optional[str] = None
    interval: Optional[int] = None
    dayOfWeek: Optional[Union[int, str]] = None
    dayOfMonth: Optional[int] = None
    endDate: Optional[datetime] = None
    nextRunDate: Optional[datetime] = None
    assignedToUserId: Optional[str] = None
    costEstimate: Optional[float] = None
    isActive: Optional[bool] = None

    @field_validator("frequency")
    @classmethod
    def check_frequency(cls, v):
        if v is not None and v not in FREQUENCIES:
            raise ValueError("Invalid frequency")
        return v

    @field_validator("dayOfWeek")
    @classmethod
    def check_day_of_week(cls, v):
        return _day_of_week(v)

    @field_validator("endDate", "nextRunDate")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)


UPDATE_FIELDS = {
    "title": "title",
    "description": "description",
    "type": "type",
    "frequency": "frequency",
    "interval": "interval",
    "dayOfWeek": "day_of_week",
    "dayOfMonth": "day_of_month",
    "endDate": "end_date",
    "nextRunDate": "next_run_date",
    "assignedToUserId": "assigned_to_user_id",
    "costEstimate": "cost_estimate",
    "isActive": "is_active",
}


def serialize_recurring_task(template: RecurringTask) -> dict:
    data = row_to_dict(template)
    if template.property:
        data["property"] = {
            "id": template.property.id,
            "name": template.property.name,
            "nickname": template.property.nickname,
        }
    return data


def _get_template(db: Session, template_id: str) -> RecurringTask:
    template = (
        db.query(RecurringTask)
        .options(joinedload(RecurringTask.property))
        .filter(RecurringTask.id == template_id)
        .first()
    )
    if not template:
        raise HTTPException(status_code=404, detail="Recurring task not found")
    return template


# ============================================================================
# GENERATION (cron)
# ============================================================================


@router.get("/generate")
@router.post("/generate")
async def run_generation(
    _: Optional[User] = Depends(verify_cron_or_admin),
    db: Session = Depends(get_db),
):
    """Generate today's tasks from due templates"""
    result = generate_recurring_tasks(db)
    return {"success": True, **result}


# ============================================================================
# CRUD
# ============================================================================


@router.get("")
async def list_recurring_tasks(
    propertyId: Optional[str] = Query(None),
    isActive: Optional[bool] = Query(None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(RecurringTask).options(joinedload(RecurringTask.property))
    if propertyId:
        query = query.filter(RecurringTask.property_id == propertyId)
    if isActive is not None:
        query = query.filter(RecurringTask.is_active.is_(isActive))
    templates = query.order_by(RecurringTask.next_run_date.asc(), RecurringTask.created_at.desc()).all()
    return [serialize_recurring_task(t) for t in templates]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_recurring_task(
    data: RecurringTaskCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not db.query(Property).filter(Property.id == data.propertyId).first():
        raise HTTPException(status_code=404, detail="Property not found")

    template = RecurringTask(
        property_id=data.propertyId,
        title=data.title,
        description=data.description,
        type=data.type,
        frequency=data.frequency,
        interval=data.interval,
        day_of_week=data.dayOfWeek,
        day_of_month=data.dayOfMonth,
        start_date=data.startDate,
        end_date=data.endDate,
        next_run_date=first_run_date(data.frequency, data.startDate, data.dayOfWeek, data.dayOfMonth),
        assigned_to_user_id=data.assignedToUserId,
        cost_estimate=data.costEstimate,
        is_active=data.isActive,
        created_by_id=current_user.id,
    )
    db.add(template)
    db.commit()
    logger.info(f"✅ Recurring task {template.id} created ({data.frequency}, next run {template.next_run_date})")
    return serialize_recurring_task(_get_template(db, template.id))


@router.get("/{template_id}")
async def get_recurring_task(
    template_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return serialize_recurring_task(_get_template(db, template_id))


@router.patch("/{template_id}")
async def update_recurring_task(
    template_id: str,
    data: RecurringTaskUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = _get_template(db, template_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is None and key in ("title", "type", "frequency", "interval", "nextRunDate", "isActive"):
            continue
        setattr(template, UPDATE_FIELDS[key], value)
    db.commit()
    return serialize_recurring_task(_get_template(db, template_id))


@router.delete("/{template_id}")
async def delete_recurring_task(
    template_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = _get_template(db, template_id)
    db.query(Task).filter(Task.recurring_task_id == template.id).update({Task.recurring_task_id: None})
    db.delete(template)
    db.commit()
    return {"success": True}
