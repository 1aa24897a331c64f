import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..auth import require_admin, require_roles
from ..database import get_db
from ..models import Contact, GuestContact, User
from ..shared.serializers import row_to_dict
from ..shared.validators import naive_utc, validate_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contacts", tags=["Contacts"])
guest_router = APIRouter(prefix="/guest-contacts", tags=["Guest Contacts"])

GUEST_TYPES = ("LEAD", "INQUIRY", "GUEST")
GUEST_STATUSES = ("NEW", "CONTACTED", "FOLLOW_UP", "CONVERTED", "LOST")


# ============================================================================
# SERVICE CONTACTS
# ============================================================================


class ContactPayload(BaseModel):
    ownerId: Optional[str] = None
    name: Optional[str] = None
    phoneNumber: Optional[str] = None
    email: Optional[EmailStr] = None
    type: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("phoneNumber")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)


CONTACT_FIELDS = {
    "ownerId": "owner_id",
    "name": "name",
    "phoneNumber": "phone_number",
    "email": "email",
    "type": "type",
    "company": "company",
    "notes": "notes",
}


def _get_contact(db: Session, contact_id: str) -> Contact:
    contact = db.query(Contact).filter(Contact.id == contact_id).first()
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact


@router.get("")
async def list_contacts(
    ownerId: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    query = db.query(Contact)
    if ownerId:
        query = query.filter(Contact.owner_id == ownerId)
    if type:
        query = query.filter(Contact.type == type)
    return [row_to_dict(c) for c in query.order_by(Contact.name.asc()).all()]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_contact(
    data: ContactPayload,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not data.name:
        raise HTTPException(status_code=400, detail="Name is required")
    values = {CONTACT_FIELDS[k]: v for k, v in data.model_dump(exclude_unset=True).items()}
    values.setdefault("type", "GENERAL")
    contact = Contact(**values)
    db.add(contact)
    db.commit()
    db.refresh(contact)
    return row_to_dict(contact)


@router.get("/{contact_id}")
async def get_contact(
    contact_id: str,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    return row_to_dict(_get_contact(db, contact_id))


@router.patch("/{contact_id}")
async def update_contact(
    contact_id: str,
    data: ContactPayload,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    contact = _get_contact(db, contact_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is None and key in ("name", "type"):
            continue
        setattr(contact, CONTACT_FIELDS[key], value)
    db.commit()
    db.refresh(contact)
    return row_to_dict(contact)


@router.delete("/{contact_id}")
async def delete_contact(
    contact_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    db.delete(_get_contact(db, contact_id))
    db.commit()
    return {"success": True}


# ============================================================================
# GUEST CONTACTS (leads)
# ============================================================================


class GuestContactPayload(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phoneNumber: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    source: Optional[str] = None
    propertyId: Optional[str] = None
    notes: Optional[str] = None
    lastContactedAt: Optional[datetime] = None
    followUpDate: Optional[datetime] = None
    convertedToBookingId: Optional[str] = None

    @field_validator("type")
    @classmethod
    def check_type(cls, v):
        if v is not None and v not in GUEST_TYPES:
            raise ValueError(f"type must be one of {', '.join(GUEST_TYPES)}")
        return v

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v is not None and v not in GUEST_STATUSES:
            raise ValueError(f"status must be one of {', '.join(GUEST_STATUSES)}")
        return v

    @field_validator("lastContactedAt", "followUpDate")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)


GUEST_FIELDS = {
    "name": "name",
    "email": "email",
    "phoneNumber": "phone_number",
    "type": "type",
    "status": "status",
    "source": "source",
    "propertyId": "property_id",
    "notes": "notes",
    "lastContactedAt": "last_contacted_at",
    "followUpDate": "follow_up_date",
    "convertedToBookingId": "converted_to_booking_id",
}


def _get_guest_contact(db: Session, contact_id: str) -> GuestContact:
    contact = db.query(GuestContact).filter(GuestContact.id == contact_id).first()
    if not contact:
        raise HTTPException(status_code=404, detail="Guest contact not found")
    return contact


@guest_router.get("")
async def list_guest_contacts(
    status_filter: Optional[str] = Query(None, alias="status"),
    type: Optional[str] = Query(None),
    propertyId: Optional[str] = Query(None),
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    query = db.query(GuestContact)
    if status_filter:
        query = query.filter(GuestContact.status == status_filter)
    if type:
        query = query.filter(GuestContact.type == type)
    if propertyId:
        query = query.filter(GuestContact.property_id == propertyId)
    return [row_to_dict(c) for c in query.order_by(GuestContact.created_at.desc()).all()]


@guest_router.post("", status_code=status.HTTP_201_CREATED)
async def create_guest_contact(
    data: GuestContactPayload,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    if not data.name:
        raise HTTPException(status_code=400, detail="Name is required")
    values = {GUEST_FIELDS[k]: v for k, v in data.model_dump(exclude_unset=True).items()}
    values.setdefault("type", "LEAD")
    values.setdefault("status", "NEW")
    contact = GuestContact(created_by_id=current_user.id, **values)
    db.add(contact)
    db.commit()
    db.refresh(contact)
    logger.info(f"📥 Guest contact {contact.id} created")
    return row_to_dict(contact)


@guest_router.get("/{contact_id}")
async def get_guest_contact(
    contact_id: str,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    return row_to_dict(_get_guest_contact(db, contact_id))


@guest_router.patch("/{contact_id}")
async def update_guest_contact(
    contact_id: str,
    data: GuestContactPayload,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    contact = _get_guest_contact(db, contact_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is None and key in ("name", "type", "status"):
            continue
        setattr(contact, GUEST_FIELDS[key], value)
    db.commit()
    db.refresh(contact)
    return row_to_dict(contact)


@guest_router.delete("/{contact_id}")
async def delete_guest_contact(
    contact_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    db.delete(_get_guest_contact(db, contact_id))
    db.commit()
    return {"success": True}
