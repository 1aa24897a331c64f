import logging
from collections import Counter
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session, joinedload

from ..auth import get_current_user, require_admin
from ..database import get_db
from ..models import Booking, Property, User
from ..services.ai_providers import AIProviderError
from ..services.ai_service import (
    empty_forecast,
    generate_forecast,
    generate_insight,
    generate_marketing_strategy,
)
from ..shared.serializers import row_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["AI"])

NO_HISTORY_NARRATIVE = (
    "No historical data available. Please add completed bookings to generate accurate forecasts."
)


class InsightRequest(BaseModel):
    pageType: str
    context: Any = None
    ownerId: Optional[str] = None
    propertyId: Optional[str] = None


class ForecastRequest(BaseModel):
    propertyId: Optional[str] = None
    ownerId: Optional[str] = None


class MarketingRequest(BaseModel):
    propertyId: Optional[str] = None
    portfolio: bool = False


def _most_common_currency(properties: list[Property]) -> str:
    currencies = [p.currency for p in properties if p.currency]
    if not currencies:
        return "GHS"
    return Counter(currencies).most_common(1)[0][0]


def _months_back(now: datetime, months: int) -> datetime:
    year, month = now.year, now.month - months
    while month <= 0:
        month += 12
        year -= 1
    return datetime(year, month, 1)


@router.post("/insights")
async def get_insights(
    data: InsightRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Dashboard insight, cached for the current month"""
    currency = "GHS"
    if data.pageType == "property_page" and data.propertyId:
        prop = db.query(Property).filter(Property.id == data.propertyId).first()
        currency = prop.currency if prop else "GHS"
    elif data.pageType == "owner_dashboard" and data.ownerId:
        properties = db.query(Property).filter(Property.owner_id == data.ownerId).all()
        currency = _most_common_currency(properties)

    owner_id = data.ownerId or (current_user.owner_id if current_user.role == "OWNER" else None)

    try:
        return await generate_insight(db, data.pageType, data.context, owner_id, data.propertyId, currency)
    except Exception as e:
        logger.error(f"❌ Insight generation failed: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to generate insights")


async def _forecast(db: Session, property_id: Optional[str], owner_id: Optional[str]) -> dict:
    now = datetime.utcnow()
    start = _months_back(now, 12)

    currency = "GHS"
    bookings: list[Booking] = []
    query = db.query(Booking).filter(Booking.status == "COMPLETED", Booking.check_in >= start)
    if property_id:
        prop = db.query(Property).filter(Property.id == property_id).first()
        if prop:
            currency = prop.currency
        bookings = query.filter(Booking.property_id == property_id).all()
    elif owner_id:
        properties = db.query(Property).filter(Property.owner_id == owner_id).all()
        currency = _most_common_currency(properties)
        property_ids = [p.id for p in properties]
        if property_ids:
            bookings = query.filter(Booking.property_id.in_(property_ids)).all()

    monthly: dict[str, dict] = {}
    for booking in bookings:
        month = booking.check_in.strftime("%Y-%m")
        bucket = monthly.setdefault(month, {"revenue": 0.0, "nights": 0})
        bucket["revenue"] += booking.total_payout_in_base or 0
        bucket["nights"] += booking.nights or 0

    historical = [
        {"month": month, "revenue": values["revenue"], "nights": values["nights"]}
        for month, values in sorted(monthly.items())
    ]
    if not historical:
        return empty_forecast(NO_HISTORY_NARRATIVE)

    try:
        return await generate_forecast(db, historical, currency)
    except Exception as e:
        logger.warning(f"⚠️ AI forecast failed, returning empty forecast: {e}")
        return empty_forecast(f"Unable to generate AI forecast. {str(e) or 'Please check AI API configuration.'}")


@router.post("/forecast")
async def post_forecast(
    data: ForecastRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Six-month forecast from the last 12 months of completed bookings"""
    return await _forecast(db, data.propertyId, data.ownerId)


@router.get("/forecast")
async def get_forecast(
    propertyId: Optional[str] = None,
    ownerId: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return await _forecast(db, propertyId, ownerId)


def _property_snapshot(db: Session, prop: Property) -> dict:
    recent = (
        db.query(Booking)
        .filter(Booking.property_id == prop.id)
        .order_by(Booking.check_in.desc())
        .limit(10)
        .all()
    )
    snapshot = row_to_dict(prop)
    snapshot["owner"] = row_to_dict(prop.owner, exclude=("payout_details",))
    snapshot["bookings"] = [row_to_dict(b) for b in recent]
    return snapshot


@router.post("/marketing")
async def marketing_strategy(
    data: MarketingRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Marketing suggestions for one property or the whole portfolio"""
    if data.portfolio:
        properties = db.query(Property).options(joinedload(Property.owner)).all()
        snapshots = [_property_snapshot(db, p) for p in properties]
        property_data, performance = {"type": "portfolio", "properties": snapshots}, {"properties": snapshots}
    elif data.propertyId:
        prop = db.query(Property).filter(Property.id == data.propertyId).first()
        if not prop:
            raise HTTPException(status_code=404, detail="Property not found")
        snapshot = _property_snapshot(db, prop)
        property_data, performance = snapshot, {"bookings": snapshot["bookings"]}
    else:
        raise HTTPException(status_code=400, detail="Property ID or portfolio flag required")

    try:
        return await generate_marketing_strategy(db, property_data, performance)
    except AIProviderError as e:
        raise HTTPException(status_code=500, detail=str(e))
