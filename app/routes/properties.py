import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session, joinedload

from ..auth import get_current_user, require_admin
from ..database import get_db
from ..models import Owner, Property, User
from ..services.metrics_service import compute_property_metrics
from ..shared.serializers import row_to_dict
from ..shared.validators import naive_utc, validate_currency

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/properties", tags=["Properties"])

PROPERTY_FIELDS = {
    "ownerId": "owner_id",
    "managerId": "manager_id",
    "name": "name",
    "nickname": "nickname",
    "address": "address",
    "city": "city",
    "country": "country",
    "currency": "currency",
    "airbnbListingId": "airbnb_listing_id",
    "airbnbListingUrl": "airbnb_listing_url",
    "bookingComId": "booking_com_id",
    "instagramHandle": "instagram_handle",
    "defaultCommissionRate": "default_commission_rate",
    "cleaningFeeRules": "cleaning_fee_rules",
    "status": "status",
    "photos": "photos",
    "bedrooms": "bedrooms",
    "bathrooms": "bathrooms",
    "maxGuests": "max_guests",
    "amenities": "amenities",
    "description": "description",
}

NON_NULLABLE = {"ownerId", "name", "currency", "defaultCommissionRate", "status"}


class PropertyFields(BaseModel):
    managerId: Optional[str] = None
    nickname: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    airbnbListingId: Optional[str] = None
    airbnbListingUrl: Optional[str] = None
    bookingComId: Optional[str] = None
    instagramHandle: Optional[str] = None
    cleaningFeeRules: Optional[dict[str, Any]] = None
    photos: Optional[list[str]] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    maxGuests: Optional[int] = None
    amenities: Optional[list[str]] = None
    description: Optional[str] = None
    currency: Optional[str] = None
    defaultCommissionRate: Optional[float] = None

    @field_validator("defaultCommissionRate")
    @classmethod
    def check_rate(cls, v):
        if v is not None and not 0 <= v <= 1:
            raise ValueError("defaultCommissionRate must be between 0 and 1")
        return v

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency(v)


class PropertyCreate(PropertyFields):
    ownerId: str
    name: str
    currency: str = "GHS"
    defaultCommissionRate: float = 0.15
    status: str = "active"


class PropertyUpdate(PropertyFields):
    ownerId: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None


def serialize_property(prop: Property) -> dict:
    data = row_to_dict(prop)
    if prop.owner:
        data["owner"] = {"id": prop.owner.id, "name": prop.owner.name}
    if prop.manager:
        data["manager"] = {"id": prop.manager.id, "name": prop.manager.name, "email": prop.manager.email}
    return data


def _get_property(db: Session, property_id: str) -> Property:
    prop = (
        db.query(Property)
        .options(joinedload(Property.owner), joinedload(Property.manager))
        .filter(Property.id == property_id)
        .first()
    )
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")
    return prop


def _check_references(db: Session, owner_id: Optional[str], manager_id: Optional[str]) -> None:
    if owner_id and not db.query(Owner).filter(Owner.id == owner_id).first():
        raise HTTPException(status_code=404, detail="Owner not found")
    if manager_id and not db.query(User).filter(User.id == manager_id).first():
        raise HTTPException(status_code=404, detail="Manager not found")


def _check_visible(user: User, prop: Property) -> None:
    if user.role == "OWNER" and prop.owner_id != user.owner_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    if user.role == "MANAGER" and prop.manager_id != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")


@router.get("")
async def list_properties(
    ownerId: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Owners see their own properties, managers the ones they manage"""
    query = db.query(Property).options(joinedload(Property.owner), joinedload(Property.manager))

    if current_user.role == "OWNER":
        if not current_user.owner_id:
            raise HTTPException(status_code=403, detail="No owner linked")
        query = query.filter(Property.owner_id == current_user.owner_id)
    elif current_user.role == "MANAGER":
        query = query.filter(Property.manager_id == current_user.id)
    elif ownerId:
        query = query.filter(Property.owner_id == ownerId)

    if status_filter:
        query = query.filter(Property.status == status_filter)

    return [serialize_property(p) for p in query.order_by(Property.name.asc()).all()]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_property(
    data: PropertyCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    _check_references(db, data.ownerId, data.managerId)
    prop = Property(**{PROPERTY_FIELDS[k]: v for k, v in data.model_dump().items()})
    db.add(prop)
    db.commit()
    logger.info(f"✅ Property {prop.id} created for owner {prop.owner_id}")
    return serialize_property(_get_property(db, prop.id))


@router.get("/{property_id}")
async def get_property(
    property_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    prop = _get_property(db, property_id)
    _check_visible(current_user, prop)
    return serialize_property(prop)


@router.get("/{property_id}/metrics")
async def get_property_metrics(
    property_id: str,
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Occupancy and money for one property; defaults to the current month"""
    prop = _get_property(db, property_id)
    _check_visible(current_user, prop)
    return compute_property_metrics(db, prop, naive_utc(startDate), naive_utc(endDate))


@router.patch("/{property_id}")
async def update_property(
    property_id: str,
    data: PropertyUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    prop = _get_property(db, property_id)
    updates = data.model_dump(exclude_unset=True)
    _check_references(db, updates.get("ownerId"), updates.get("managerId"))
    for key, value in updates.items():
        if value is None and key in NON_NULLABLE:
            continue
        setattr(prop, PROPERTY_FIELDS[key], value)
    db.commit()
    return serialize_property(_get_property(db, property_id))


@router.delete("/{property_id}")
async def delete_property(
    property_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    prop = _get_property(db, property_id)
    db.delete(prop)
    db.commit()
    logger.info(f"✅ Property {property_id} deleted")
    return {"success": True}
