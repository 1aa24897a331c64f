"""Payout domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import naive_utc, validate_currency


class PayoutCreate(BaseModel):
    ownerId: Optional[str] = None
    amount: Optional[float] = None
    currency: str = "GHS"
    method: Optional[str] = None
    reference: Optional[str] = None
    processedAt: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency(v)

    @field_validator("processedAt")
    @classmethod
    def normalize_date(cls, v):
        return naive_utc(v)
