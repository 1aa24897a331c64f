import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session, joinedload

from ..auth import get_current_user, require_roles
from ..database import get_db
from ..models import Property, Task, User
from ..shared.serializers import row_to_dict
from ..shared.validators import naive_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["Tasks"])

TASK_TYPES = ("CLEANING", "MAINTENANCE", "INSPECTION", "OTHER")
TASK_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "CANCELLED")

TASK_FIELDS = {
    "propertyId": "property_id",
    "bookingId": "booking_id",
    "type": "type",
    "title": "title",
    "description": "description",
    "assignedToUserId": "assigned_to_user_id",
    "scheduledAt": "scheduled_at",
    "dueAt": "due_at",
    "costEstimate": "cost_estimate",
    "status": "status",
}


class TaskCreate(BaseModel):
    propertyId: str
    bookingId: Optional[str] = None
    type: str = "OTHER"
    title: str
    description: Optional[str] = None
    assignedToUserId: Optional[str] = None
    scheduledAt: Optional[datetime] = None
    dueAt: Optional[datetime] = None
    costEstimate: Optional[float] = None
    status: str = "PENDING"

    @field_validator("scheduledAt", "dueAt")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)

    @field_validator("type")
    @classmethod
    def check_type(cls, v):
        if v not in TASK_TYPES:
            raise ValueError(f"type must be one of {', '.join(TASK_TYPES)}")
        return v

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v not in TASK_STATUSES:
            raise ValueError(f"status must be one of {', '.join(TASK_STATUSES)}")
        return v


class TaskUpdate(BaseModel):
    type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    assignedToUserId: Optional[str] = None
    scheduledAt: Optional[datetime] = None
    dueAt: Optional[datetime] = None
    costEstimate: Optional[float] = None
    status: Optional[str] = None

    @field_validator("scheduledAt", "dueAt")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v is not None and v not in TASK_STATUSES:
            raise ValueError(f"status must be one of {', '.join(TASK_STATUSES)}")
        return v


def serialize_task(task: Task) -> dict:
    data = row_to_dict(task)
    if task.property:
        data["property"] = {"id": task.property.id, "name": task.property.name}
    return data


def _get_task(db: Session, task_id: str, user: User) -> Task:
    task = db.query(Task).options(joinedload(Task.property)).filter(Task.id == task_id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    if user.role == "MANAGER" and (not task.property or task.property.manager_id != user.id):
        raise HTTPException(status_code=403, detail="Forbidden")
    return task


@router.get("")
async def list_tasks(
    propertyId: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    type: Optional[str] = Query(None),
    assignedToUserId: Optional[str] = Query(None),
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    """Managers only see tasks of the properties they manage"""
    query = db.query(Task).options(joinedload(Task.property))
    if current_user.role == "MANAGER":
        managed = db.query(Property.id).filter(Property.manager_id == current_user.id)
        query = query.filter(Task.property_id.in_(managed))
    if propertyId:
        query = query.filter(Task.property_id == propertyId)
    if status_filter:
        query = query.filter(Task.status == status_filter)
    if type:
        query = query.filter(Task.type == type)
    if assignedToUserId:
        query = query.filter(Task.assigned_to_user_id == assignedToUserId)
    tasks = query.order_by(Task.due_at.is_(None), Task.due_at.asc(), Task.created_at.desc()).all()
    return [serialize_task(t) for t in tasks]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_task(
    data: TaskCreate,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    prop = db.query(Property).filter(Property.id == data.propertyId).first()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")
    if current_user.role == "MANAGER" and prop.manager_id != current_user.id:
        raise HTTPException(status_code=403, detail="Forbidden")

    task = Task(**{TASK_FIELDS[k]: v for k, v in data.model_dump().items()})
    db.add(task)
    db.commit()
    logger.info(f"📥 Task {task.id} created for property {prop.id}")
    return serialize_task(_get_task(db, task.id, current_user))


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    return serialize_task(_get_task(db, task_id, current_user))


@router.patch("/{task_id}")
async def update_task(
    task_id: str,
    data: TaskUpdate,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    task = _get_task(db, task_id, current_user)
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is None and key in ("type", "title", "status"):
            continue
        setattr(task, TASK_FIELDS[key], value)
    db.commit()
    return serialize_task(_get_task(db, task_id, current_user))


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    db.delete(_get_task(db, task_id, current_user))
    db.commit()
    return {"success": True}


@router.get("/me/assigned")
async def my_tasks(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Open tasks assigned to the current user"""
    tasks = (
        db.query(Task)
        .options(joinedload(Task.property))
        .filter(Task.assigned_to_user_id == current_user.id, Task.status.in_(("PENDING", "IN_PROGRESS")))
        .order_by(Task.due_at.asc())
        .all()
    )
    return [serialize_task(t) for t in tasks]
