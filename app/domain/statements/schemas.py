"""Statement domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...shared.validators import naive_utc, validate_currency


class StatementGenerate(BaseModel):
    """Schema for generating a draft statement"""

    ownerId: str
    periodStart: datetime
    periodEnd: datetime
    displayCurrency: Optional[str] = None

    @field_validator("periodStart", "periodEnd")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)

    @field_validator("displayCurrency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency(v)

    @model_validator(mode="after")
    def check_period(self):
        if self.periodEnd < self.periodStart:
            raise ValueError("periodEnd must be after periodStart")
        return self


class StatementPreviewAll(BaseModel):
    """Period for previewing every owner's statement without saving anything"""

    periodStart: datetime
    periodEnd: datetime
    displayCurrency: str = "GHS"

    @field_validator("periodStart", "periodEnd")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)

    @field_validator("displayCurrency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency(v)

    @model_validator(mode="after")
    def check_period(self):
        if self.periodEnd < self.periodStart:
            raise ValueError("periodEnd must be after periodStart")
        return self
