"""Owner domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, field_validator

from ...shared.validators import naive_utc, validate_currency, validate_phone

PREFERRED_CHANNELS = ("EMAIL", "SMS", "WHATSAPP")
TRANSACTION_TYPES = ("STATEMENT_NET", "PAYOUT", "COMMISSION_PAYMENT", "MANUAL_ADJUSTMENT", "EXPENSE")


class OwnerBase(BaseModel):
    email: Optional[EmailStr] = None
    phoneNumber: Optional[str] = None
    whatsappNumber: Optional[str] = None
    preferredChannel: Optional[str] = None
    payoutDetails: Optional[dict[str, Any]] = None
    notes: Optional[str] = None

    @field_validator("phoneNumber", "whatsappNumber")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)

    @field_validator("preferredChannel")
    @classmethod
    def check_channel(cls, v):
        if v is not None and v not in PREFERRED_CHANNELS:
            raise ValueError("preferredChannel must be EMAIL, SMS or WHATSAPP")
        return v


class OwnerCreate(OwnerBase):
    """Schema for creating an owner, optionally with a login account"""

    name: str
    preferredCurrency: str = "GHS"
    status: str = "active"
    createUserAccount: bool = False
    password: Optional[str] = None

    @field_validator("preferredCurrency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        if v is not None and len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        return v


class OwnerUpdate(OwnerBase):
    name: Optional[str] = None
    preferredCurrency: Optional[str] = None
    status: Optional[str] = None

    @field_validator("preferredCurrency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency(v)


class WalletPayment(BaseModel):
    """Body for pay-balance and pay-commission"""

    amount: float
    currency: str = "GHS"
    reference: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency(v)


class TransactionCreate(BaseModel):
    type: str
    amount: float
    currency: str = "GHS"
    referenceId: Optional[str] = None
    notes: Optional[str] = None
    date: Optional[datetime] = None

    @field_validator("type")
    @classmethod
    def check_type(cls, v):
        if v not in TRANSACTION_TYPES:
            raise ValueError(f"type must be one of {', '.join(TRANSACTION_TYPES)}")
        return v

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency(v)

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v):
        return naive_utc(v)
