import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_roles
from ..database import get_db
from ..models import ADMIN_ROLES, InventoryHistory, InventoryItem, Property, User
from ..services.notification_service import run_notification_job, send_low_stock_notification
from ..shared.serializers import row_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["Inventory"])

INVENTORY_CATEGORIES = ("CONSUMABLE", "EQUIPMENT", "FURNITURE", "LINEN", "OTHER")

ITEM_FIELDS = {
    "propertyId": "property_id",
    "name": "name",
    "category": "category",
    "quantity": "quantity",
    "minimumQuantity": "minimum_quantity",
    "unit": "unit",
    "notes": "notes",
}


class InventoryPayload(BaseModel):
    propertyId: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[int] = None
    minimumQuantity: Optional[int] = None
    unit: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("category")
    @classmethod
    def check_category(cls, v):
        if v is not None and v not in INVENTORY_CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(INVENTORY_CATEGORIES)}")
        return v

    @field_validator("quantity", "minimumQuantity")
    @classmethod
    def check_quantity(cls, v):
        if v is not None and v < 0:
            raise ValueError("Quantities cannot be negative")
        return v



class InventoryAdjust(BaseModel):
    quantity: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def check_quantity(cls, v):
        if v is not None and v < 0:
            raise ValueError("Quantity cannot be negative")
        return v

def is_low_stock(item: InventoryItem) -> bool:
    return item.category == "CONSUMABLE" and item.quantity <= item.minimum_quantity


def serialize_item(item: InventoryItem) -> dict:
    data = row_to_dict(item)
    data["isLowStock"] = is_low_stock(item)
    return data


def _get_item(db: Session, item_id: str) -> InventoryItem:
    item = db.query(InventoryItem).filter(InventoryItem.id == item_id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return item


@router.get("")
async def list_inventory(
    propertyId: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    lowStock: bool = Query(False),
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    query = db.query(InventoryItem)
    if propertyId:
        query = query.filter(InventoryItem.property_id == propertyId)
    if category:
        query = query.filter(InventoryItem.category == category)
    if lowStock:
        query = query.filter(
            InventoryItem.category == "CONSUMABLE",
            InventoryItem.quantity <= InventoryItem.minimum_quantity,
        )
    return [serialize_item(i) for i in query.order_by(InventoryItem.name.asc()).all()]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_item(
    data: InventoryPayload,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    if not data.propertyId or not data.name:
        raise HTTPException(status_code=400, detail="Property and name are required")
    if not db.query(Property).filter(Property.id == data.propertyId).first():
        raise HTTPException(status_code=404, detail="Property not found")
    values = {ITEM_FIELDS[k]: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    item = InventoryItem(**values)
    db.add(item)
    db.commit()
    db.refresh(item)
    return serialize_item(item)


@router.patch("/{item_id}")
async def update_item(
    item_id: str,
    data: InventoryPayload,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    item = _get_item(db, item_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is None and key not in ("unit", "notes"):
            continue
        setattr(item, ITEM_FIELDS[key], value)
    db.commit()
    db.refresh(item)
    return serialize_item(item)


@router.delete("/{item_id}")
async def delete_item(
    item_id: str,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    db.delete(_get_item(db, item_id))
    db.commit()
    return {"success": True}


def _check_property_access(db: Session, user: User, item: InventoryItem, allow_owner: bool = False) -> None:
    if user.role in ADMIN_ROLES or user.role == "GENERAL_MANAGER":
        return
    prop = db.query(Property).filter(Property.id == item.property_id).first()
    if user.role == "MANAGER" and prop and prop.manager_id == user.id:
        return
    if allow_owner and user.role == "OWNER" and prop and user.owner_id and prop.owner_id == user.owner_id:
        return
    if user.role == "MANAGER":
        raise HTTPException(status_code=403, detail="You can only adjust inventory for properties you manage")
    raise HTTPException(status_code=403, detail="Forbidden")


def change_type_for(previous: int, new: int) -> str:
    if new > previous:
        return "restocked"
    if new < previous:
        return "consumed"
    return "adjustment"


@router.post("/{item_id}/adjust")
async def adjust_quantity(
    item_id: str,
    data: InventoryAdjust,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    """Record a stock count for a consumable and keep its history"""
    item = _get_item(db, item_id)
    _check_property_access(db, current_user, item)
    if data.quantity is None:
        raise HTTPException(status_code=400, detail="Quantity is required")
    if item.category != "CONSUMABLE":
        raise HTTPException(status_code=400, detail="Can only adjust quantity for consumable items")

    previous = item.quantity
    was_low = is_low_stock(item)
    item.quantity = data.quantity
    item.last_checked_at = datetime.utcnow()
    item.last_checked_by_id = current_user.id
    db.add(
        InventoryHistory(
            inventory_item_id=item.id,
            previous_quantity=previous,
            new_quantity=data.quantity,
            change_type=change_type_for(previous, data.quantity),
            notes=data.notes or None,
            changed_by_id=current_user.id,
        )
    )
    db.commit()
    db.refresh(item)
    logger.info(f"📦 Inventory {item.id} adjusted {previous} -> {item.quantity} by {current_user.id}")

    # Only alert when the count crosses the threshold, not on every recount below it
    if is_low_stock(item) and not was_low:
        background_tasks.add_task(run_notification_job, send_low_stock_notification, item.id)
    return serialize_item(item)


@router.get("/{item_id}/history")
async def item_history(
    item_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    item = _get_item(db, item_id)
    _check_property_access(db, current_user, item, allow_owner=True)
    entries = (
        db.query(InventoryHistory)
        .filter(InventoryHistory.inventory_item_id == item.id)
        .order_by(InventoryHistory.created_at.desc())
        .limit(50)
        .all()
    )
    result = []
    for entry in entries:
        data = row_to_dict(entry)
        data["changedBy"] = (
            {"id": entry.changed_by.id, "name": entry.changed_by.name} if entry.changed_by else None
        )
        result.append(data)
    return result
