"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import naive_utc, validate_currency

BOOKING_SOURCES = ("AIRBNB", "BOOKING_COM", "DIRECT", "INSTAGRAM", "OTHER")
BOOKING_STATUSES = ("UPCOMING", "CHECKED_IN", "COMPLETED", "CANCELLED")
PAYMENT_RECEIVERS = ("COMPANY", "OWNER")


class BookingCreate(BaseModel):
    """Schema for creating a booking"""

    propertyId: str
    source: str = "DIRECT"
    externalReservationCode: Optional[str] = None
    guestName: Optional[str] = None
    guestEmail: Optional[str] = None
    guestPhoneNumber: Optional[str] = None
    guestContactId: Optional[str] = None
    checkInDate: datetime
    checkOutDate: datetime
    baseAmount: float
    cleaningFee: float = 0
    platformFees: float = 0
    taxes: float = 0
    currency: str = "GHS"
    fxRateToBase: Optional[float] = None
    paymentReceivedBy: str = "COMPANY"
    autoCreateCleaningTask: bool = True
    notes: Optional[str] = None

    @field_validator("checkInDate", "checkOutDate")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency(v)

    @field_validator("source")
    @classmethod
    def check_source(cls, v):
        if v not in BOOKING_SOURCES:
            raise ValueError(f"source must be one of {', '.join(BOOKING_SOURCES)}")
        return v

    @field_validator("paymentReceivedBy")
    @classmethod
    def check_payment_receiver(cls, v):
        if v not in PAYMENT_RECEIVERS:
            raise ValueError("paymentReceivedBy must be COMPANY or OWNER")
        return v


class BookingUpdate(BaseModel):
    """Schema for updating a booking, all fields optional"""

    source: Optional[str] = None
    externalReservationCode: Optional[str] = None
    guestName: Optional[str] = None
    guestEmail: Optional[str] = None
    guestPhoneNumber: Optional[str] = None
    checkInDate: Optional[datetime] = None
    checkOutDate: Optional[datetime] = None
    baseAmount: Optional[float] = None
    cleaningFee: Optional[float] = None
    platformFees: Optional[float] = None
    taxes: Optional[float] = None
    currency: Optional[str] = None
    fxRateToBase: Optional[float] = None
    paymentReceivedBy: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("checkInDate", "checkOutDate")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency(v)

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v is not None and v not in BOOKING_STATUSES:
            raise ValueError(f"status must be one of {', '.join(BOOKING_STATUSES)}")
        return v

    @field_validator("paymentReceivedBy")
    @classmethod
    def check_payment_receiver(cls, v):
        if v is not None and v not in PAYMENT_RECEIVERS:
            raise ValueError("paymentReceivedBy must be COMPANY or OWNER")
        return v


class CheckInRequest(BaseModel):
    notes: Optional[str] = None


BULK_ACTIONS = ("updateStatus", "delete", "sendNotifications", "export")


class BookingBulkAction(BaseModel):
    ids: list[str] = []
    action: Optional[str] = None
    data: Optional[dict] = None
