"""
Currency conversion through stored FX rates

Rates are "USD per one unit of currency" (USD is the base). Admins override
the defaults with the FX_RATE_GHS / FX_RATE_USD settings; the rate table is
cached in Redis for a minute.
"""

import logging
import math
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from .cache import fx_rate_cache
from .config import BASE_CURRENCY
from .models import Setting

logger = logging.getLogger(__name__)

DEFAULT_FX_RATES = {
    "USD": 1.0,
    "GHS": 0.08,
}


def _parse_rate(value: Optional[str]) -> Optional[float]:
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(rate) or rate <= 0:
        return None
    return rate


def get_fx_rates(db: Session) -> dict[str, float]:
    """Return the current rate table, from cache when possible"""
    cached = fx_rate_cache.get_rates()
    if cached:
        return cached

    rates = dict(DEFAULT_FX_RATES)
    try:
        settings = db.query(Setting).filter(Setting.key.in_(["FX_RATE_GHS", "FX_RATE_USD"])).all()
        for setting in settings:
            rate = _parse_rate(setting.value)
            if rate is None:
                continue
            if setting.key == "FX_RATE_GHS":
                rates["GHS"] = rate
            elif setting.key == "FX_RATE_USD":
                rates["USD"] = rate
    except Exception as e:
        logger.error(f"❌ Failed to fetch FX rates from database: {e}")
        return dict(DEFAULT_FX_RATES)

    fx_rate_cache.set_rates(rates)
    return rates


def clear_fx_rates_cache() -> None:
    """Call after the FX settings change"""
    fx_rate_cache.invalidate()
    logger.info("🔄 FX rates cache cleared")


def rate_between(rates: dict[str, float], from_currency: str, to_currency: str = BASE_CURRENCY) -> float:
    """Rate lookup against an already-loaded table"""
    if from_currency == to_currency:
        return 1.0
    if to_currency == BASE_CURRENCY:
        return rates.get(from_currency, 1.0)
    if from_currency == BASE_CURRENCY:
        return 1 / rates.get(to_currency, 1.0)
    return rates.get(from_currency, 1.0) / rates.get(to_currency, 1.0)


def get_fx_rate(db: Session, from_currency: str, to_currency: str = BASE_CURRENCY) -> float:
    if from_currency == to_currency:
        return 1.0
    return rate_between(get_fx_rates(db), from_currency, to_currency)


def convert_currency(
    db: Session, amount: float, from_currency: str, to_currency: str = BASE_CURRENCY
) -> float:
    if from_currency == to_currency:
        return amount
    return amount * get_fx_rate(db, from_currency, to_currency)


def batch_convert(
    db: Session, items: Iterable[tuple[float, str]], to_currency: str = BASE_CURRENCY
) -> list[float]:
    """Convert many (amount, currency) pairs with a single rate lookup"""
    items = list(items)
    if all(currency == to_currency for _, currency in items):
        return [amount for amount, _ in items]
    rates = get_fx_rates(db)
    return [
        amount if currency == to_currency else amount * rate_between(rates, currency, to_currency)
        for amount, currency in items
    ]


def safe_number(value) -> float:
    """None, NaN and infinities become 0"""
    if value is None:
        return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value) or math.isinf(value):
        return 0.0
    return value


def format_currency(amount, currency: str) -> str:
    amount = safe_number(amount)
    sign = "-" if amount < 0 else ""
    if currency == "USD":
        return f"{sign}${abs(amount):,.2f}"
    return f"{sign}{currency} {abs(amount):,.2f}"
