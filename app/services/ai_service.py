"""
AI insights, revenue forecasts and marketing suggestions
Insights are cached per (page, owner, property, month) for one hour.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..models import AIInsightCache
from .ai_providers import AIProviderError, call_ai

logger = logging.getLogger(__name__)

INSIGHT_CACHE_HOURS = 1
INVALID_RESPONSE = "AI returned an invalid response format. Please try again."

PAGE_PROMPTS = {
    "admin_dashboard": (
        "Analyze this admin dashboard data: {context}. Provide insights about overall performance, "
        "top properties, and recommendations."
    ),
    "owner_dashboard": (
        "Analyze this owner dashboard data: {context}. Provide insights about the owner's portfolio "
        "performance and recommendations."
    ),
    "property_page": (
        "Analyze this property data: {context}. Provide insights about property performance, trends, "
        "and recommendations."
    ),
}
DEFAULT_PAGE_PROMPT = "Analyze this data: {context}. Provide insights and recommendations."

MARKETING_KEYS = ("pricing", "promotions", "listing", "content", "campaigns")


def _insight_system_prompt(currency: str) -> str:
    return (
        "You are an analytical assistant for a property management platform. Provide insights in JSON "
        "format with title, summary, keyPoints (array), suggestions (array), and optional riskFlags (array).\n\n"
        f"CRITICAL CURRENCY RULE: You MUST NEVER use the dollar sign ($) in your response. All currency "
        f"amounts MUST use {currency} symbol.\n"
        f'- CORRECT: "{currency}48,745", "{currency}7,311.75", "{currency}900"\n'
        '- WRONG: "$48,745", "$7,311.75", "$900"\n'
        f"- Every single monetary value in your entire response must use {currency}, not $.\n"
        "- Check your response carefully before returning it to ensure no $ symbols appear anywhere."
    )


def build_insight_prompt(page_type: str, context, currency: str = "GHS") -> str:
    template = PAGE_PROMPTS.get(page_type, DEFAULT_PAGE_PROMPT)
    currency_note = (
        f"CRITICAL: All currency amounts in the data are displayed in {currency}. You MUST use {currency} "
        f'symbol for ALL monetary values in your response. NEVER use $ symbol. Examples: "{currency}48,745" '
        '(correct), "$48,745" (WRONG).'
    )
    return (
        template.format(context=json.dumps(context, default=str))
        + f" \n\n{currency_note}\n\n"
        + f"Remember: Use {currency} for ALL currency amounts. Do NOT use $ anywhere in your response."
    )


def _find_cached_insight(
    db: Session, page_type: str, owner_id: Optional[str], property_id: Optional[str], period: str
) -> Optional[AIInsightCache]:
    query = db.query(AIInsightCache).filter(
        AIInsightCache.page_type == page_type, AIInsightCache.period == period
    )
    # NULL matches NULL
    query = query.filter(
        AIInsightCache.owner_id == owner_id if owner_id else AIInsightCache.owner_id.is_(None)
    )
    query = query.filter(
        AIInsightCache.property_id == property_id if property_id else AIInsightCache.property_id.is_(None)
    )
    return query.first()


async def generate_insight(
    db: Session,
    page_type: str,
    context,
    owner_id: Optional[str] = None,
    property_id: Optional[str] = None,
    currency: str = "GHS",
) -> dict:
    """
    Insight {title, summary, keyPoints, suggestions, riskFlags?} for a dashboard page.
    Cached entries that mention "$" predate the currency rule and are regenerated.
    """
    now = datetime.utcnow()
    period = now.strftime("%Y-%m")

    cached = _find_cached_insight(db, page_type, owner_id, property_id, period)
    if cached:
        if cached.expires_at > now and "$" not in json.dumps(cached.content):
            logger.info(f"🤖 Insight cache hit for {page_type} ({period})")
            return cached.content
        db.delete(cached)
        db.commit()

    messages = [
        {"role": "system", "content": _insight_system_prompt(currency)},
        {"role": "user", "content": build_insight_prompt(page_type, context, currency)},
    ]
    response_text = await call_ai(db, messages, temperature=0.7, json_mode=True)

    try:
        insight = json.loads(response_text or "{}")
    except json.JSONDecodeError as e:
        logger.error(f"❌ Failed to parse AI insight response: {response_text[:500]}")
        raise AIProviderError(INVALID_RESPONSE) from e

    db.add(
        AIInsightCache(
            page_type=page_type,
            owner_id=owner_id or None,
            property_id=property_id or None,
            period=period,
            content=insight,
            expires_at=now + timedelta(hours=INSIGHT_CACHE_HOURS),
        )
    )
    db.commit()
    logger.info(f"✅ Insight generated for {page_type} ({period})")
    return insight


def _number(value) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def empty_forecast(narrative: str) -> dict:
    return {
        "forecastMonthlyRevenue": [0, 0, 0, 0, 0, 0],
        "forecastOccupancy": [0, 0, 0, 0, 0, 0],
        "narrative": narrative,
        "low": 0,
        "expected": 0,
        "high": 0,
    }


def normalize_forecast(parsed: dict) -> dict:
    """Coerce provider output into six-month revenue/occupancy arrays and totals"""
    revenue = parsed.get("forecastMonthlyRevenue")
    occupancy = parsed.get("forecastOccupancy")
    forecast = {
        "forecastMonthlyRevenue": [_number(v) for v in revenue] if isinstance(revenue, list) else [0] * 6,
        "forecastOccupancy": [_number(v) for v in occupancy] if isinstance(occupancy, list) else [0] * 6,
        "narrative": parsed.get("narrative") if isinstance(parsed.get("narrative"), str) else "",
        "low": _number(parsed.get("low")),
        "expected": _number(parsed.get("expected")),
        "high": _number(parsed.get("high")),
    }

    if forecast["expected"] == 0 and any(v > 0 for v in forecast["forecastMonthlyRevenue"]):
        forecast["expected"] = sum(forecast["forecastMonthlyRevenue"])
        forecast["low"] = forecast["expected"] * 0.8
        forecast["high"] = forecast["expected"] * 1.2
    return forecast


async def generate_forecast(db: Session, historical: dict, currency: str = "GHS") -> dict:
    """
    Six-month revenue and occupancy forecast from monthly history

    Raises:
        AIProviderError: provider failure or unparseable response
    """
    messages = [
        {
            "role": "system",
            "content": (
                "You are a forecasting assistant for property management. You MUST respond with valid JSON "
                "containing these exact fields:\n"
                "{\n"
                '  "forecastMonthlyRevenue": [number, number, number, number, number, number],\n'
                '  "forecastOccupancy": [number, number, number, number, number, number],\n'
                '  "narrative": "string with your analysis",\n'
                '  "low": number (total 6-month revenue - conservative estimate),\n'
                '  "expected": number (total 6-month revenue - expected estimate),\n'
                '  "high": number (total 6-month revenue - optimistic estimate)\n'
                "}\n\n"
                f'IMPORTANT: When writing the narrative, use {currency} (not $) for currency. For example, '
                f'write "{currency}5,000" instead of "$5,000".\n\n'
                "The forecastMonthlyRevenue array must contain 6 numeric values representing predicted "
                "revenue for each of the next 6 months.\n"
                "The forecastOccupancy array must contain 6 numeric values (0-100) representing predicted "
                "occupancy percentage for each month.\n"
                "The low, expected, and high values should be the total 6-month revenue in different scenarios."
            ),
        },
        {
            "role": "user",
            "content": (
                f"Based on this historical property data: {json.dumps(historical, default=str)}, provide "
                "revenue and occupancy forecasts for the next 6 months. Consider seasonality and trends.\n\n"
                f"IMPORTANT: All revenue amounts in your narrative should use {currency} currency symbol "
                f'(not $). For example, write "{currency}5,000" instead of "$5,000".'
            ),
        },
    ]
    response_text = await call_ai(db, messages, temperature=0.7, json_mode=True)

    try:
        parsed = json.loads(response_text or "{}")
    except json.JSONDecodeError as e:
        logger.error(f"❌ Failed to parse AI forecast response: {response_text[:500]}")
        raise AIProviderError(INVALID_RESPONSE) from e
    if not isinstance(parsed, dict):
        raise AIProviderError(INVALID_RESPONSE)
    return normalize_forecast(parsed)


async def generate_marketing_strategy(db: Session, property_data, performance_data) -> dict:
    """Marketing suggestions grouped as pricing/promotions/listing/content/campaigns"""
    messages = [
        {
            "role": "system",
            "content": (
                "You are a marketing assistant for property management. You MUST respond with valid JSON "
                "containing these exact fields:\n"
                "{\n"
                '  "pricing": ["string array of pricing recommendations"],\n'
                '  "promotions": ["string array of promotion ideas"],\n'
                '  "listing": ["string array of listing improvement tips"],\n'
                '  "content": ["string array of content marketing ideas"],\n'
                '  "campaigns": ["string array of marketing campaign ideas"]\n'
                "}\n\n"
                "Each array should contain 3-5 actionable recommendations as strings."
            ),
        },
        {
            "role": "user",
            "content": (
                f"For this property: {json.dumps(property_data, default=str)} with performance: "
                f"{json.dumps(performance_data, default=str)}, provide marketing strategies including pricing, "
                "promotions, listing improvements, content ideas, and campaign suggestions."
            ),
        },
    ]
    response_text = await call_ai(db, messages, temperature=0.8, json_mode=True)

    try:
        parsed = json.loads(response_text or "{}")
    except json.JSONDecodeError as e:
        logger.error(f"❌ Failed to parse AI marketing response: {response_text[:500]}")
        raise AIProviderError(INVALID_RESPONSE) from e
    return {key: parsed.get(key) if isinstance(parsed.get(key), list) else [] for key in MARKETING_KEYS}
