import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session, joinedload

from ..auth import require_admin
from ..currency import convert_currency, get_fx_rate
from ..database import get_db
from ..models import Expense, Property, User
from ..shared.serializers import row_to_dict
from ..shared.validators import naive_utc, validate_currency

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/expenses", tags=["Expenses"])

EXPENSE_CATEGORIES = ("CLEANING", "MAINTENANCE", "UTILITIES", "SUPPLIES", "REPAIRS", "FEES", "OTHER")
PAID_BY = ("company", "owner")


class ExpenseCreate(BaseModel):
    propertyId: str
    date: datetime
    category: str = "OTHER"
    description: Optional[str] = None
    amount: float
    currency: str = "GHS"
    fxRateToBase: Optional[float] = None
    paidBy: str = "company"
    linkedTaskId: Optional[str] = None
    attachmentUrl: Optional[str] = None

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v):
        return naive_utc(v)

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency(v)

    @field_validator("paidBy")
    @classmethod
    def check_paid_by(cls, v):
        if v not in PAID_BY:
            raise ValueError("paidBy must be company or owner")
        return v


class ExpenseUpdate(BaseModel):
    date: Optional[datetime] = None
    category: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    fxRateToBase: Optional[float] = None
    paidBy: Optional[str] = None
    linkedTaskId: Optional[str] = None
    attachmentUrl: Optional[str] = None

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v):
        return naive_utc(v)

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency(v)

    @field_validator("paidBy")
    @classmethod
    def check_paid_by(cls, v):
        if v is not None and v not in PAID_BY:
            raise ValueError("paidBy must be company or owner")
        return v


def serialize_expense(expense: Expense) -> dict:
    data = row_to_dict(expense)
    if expense.property:
        data["property"] = {"id": expense.property.id, "name": expense.property.name}
    return data


def _get_expense(db: Session, expense_id: str) -> Expense:
    expense = (
        db.query(Expense).options(joinedload(Expense.property)).filter(Expense.id == expense_id).first()
    )
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense


@router.get("")
async def list_expenses(
    propertyId: Optional[str] = Query(None),
    ownerId: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Expense).options(joinedload(Expense.property))
    if propertyId:
        query = query.filter(Expense.property_id == propertyId)
    if ownerId:
        query = query.filter(Expense.owner_id == ownerId)
    if category:
        query = query.filter(Expense.category == category)
    if startDate:
        query = query.filter(Expense.date >= naive_utc(startDate))
    if endDate:
        query = query.filter(Expense.date <= naive_utc(endDate))
    return [serialize_expense(e) for e in query.order_by(Expense.date.desc()).all()]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_expense(
    data: ExpenseCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Record an expense; the owner is taken from the property"""
    prop = db.query(Property).filter(Property.id == data.propertyId).first()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")

    expense = Expense(
        property_id=prop.id,
        owner_id=prop.owner_id,
        date=data.date,
        category=data.category,
        description=data.description,
        amount=data.amount,
        currency=data.currency,
        fx_rate_to_base=data.fxRateToBase or get_fx_rate(db, data.currency),
        amount_in_base=convert_currency(db, data.amount, data.currency),
        paid_by=data.paidBy,
        linked_task_id=data.linkedTaskId,
        attachment_url=data.attachmentUrl,
    )
    db.add(expense)
    db.commit()
    logger.info(f"📥 Expense {expense.id} recorded for property {prop.id}: {data.currency} {data.amount:.2f}")
    return serialize_expense(_get_expense(db, expense.id))


@router.get("/{expense_id}")
async def get_expense(
    expense_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return serialize_expense(_get_expense(db, expense_id))


@router.patch("/{expense_id}")
async def update_expense(
    expense_id: str,
    data: ExpenseUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    expense = _get_expense(db, expense_id)
    updates = data.model_dump(exclude_unset=True)
    field_map = {
        "date": "date",
        "category": "category",
        "description": "description",
        "amount": "amount",
        "currency": "currency",
        "fxRateToBase": "fx_rate_to_base",
        "paidBy": "paid_by",
        "linkedTaskId": "linked_task_id",
        "attachmentUrl": "attachment_url",
    }
    for key, value in updates.items():
        if value is None and key in ("date", "category", "amount", "currency", "paidBy"):
            continue
        setattr(expense, field_map[key], value)

    if "amount" in updates or "currency" in updates:
        expense.amount_in_base = convert_currency(db, expense.amount, expense.currency)
        if not updates.get("fxRateToBase"):
            expense.fx_rate_to_base = get_fx_rate(db, expense.currency)

    db.commit()
    return serialize_expense(_get_expense(db, expense_id))


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    db.delete(_get_expense(db, expense_id))
    db.commit()
    return {"success": True}
