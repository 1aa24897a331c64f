"""Shared validation utilities"""

import re
from datetime import datetime, timezone
from typing import Optional


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def validate_currency(currency: Optional[str]) -> Optional[str]:
    """
    Normalize a currency code to upper case.

    Raises:
        ValueError: If the code is not a three letter ISO code
    """
    if currency is None:
        return currency
    code = currency.strip().upper()
    if not re.fullmatch(r"[A-Z]{3}", code):
        raise ValueError("Currency must be a 3-letter ISO code")
    return code


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Loose international phone validation: digits, spaces, dashes, parentheses
    and an optional leading +. Normalization happens in the channel adapters.
    """
    if not phone:
        return phone
    cleaned = phone.strip()
    digits = re.sub(r"\D", "", cleaned)
    if not re.fullmatch(r"\+?[\d\s\-()]+", cleaned) or len(digits) < 7:
        raise ValueError("Invalid phone number")
    return cleaned
