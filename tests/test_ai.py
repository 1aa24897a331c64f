import json
from datetime import datetime, timedelta

import httpx
import pytest

from app.models import AIInsightCache
from app.services import ai_service
from app.services.ai_providers import AIProviderError, call_ai, get_ai_config
from app.services.ai_service import build_insight_prompt, generate_insight, normalize_forecast
from app.services.settings_service import upsert_setting

REAL_ASYNC_CLIENT = httpx.AsyncClient


@pytest.fixture
def fake_ai(monkeypatch):
    calls = []
    responses = []

    async def fake_call_ai(db, messages, temperature=0.7, json_mode=True, model=None):
        calls.append(messages)
        return responses.pop(0)

    monkeypatch.setattr(ai_service, "call_ai", fake_call_ai)
    fake_call_ai.calls = calls
    fake_call_ai.responses = responses
    return fake_call_ai


def test_normalize_forecast_fills_totals_from_months():
    forecast = normalize_forecast(
        {"forecastMonthlyRevenue": [100, "200", None, 0, 0, 0], "forecastOccupancy": "high", "narrative": 5}
    )

    assert forecast["forecastMonthlyRevenue"] == [100.0, 200.0, 0.0, 0.0, 0.0, 0.0]
    assert forecast["forecastOccupancy"] == [0] * 6
    assert forecast["narrative"] == ""
    assert forecast["expected"] == 300
    assert forecast["low"] == pytest.approx(240)
    assert forecast["high"] == pytest.approx(360)


def test_normalize_forecast_keeps_provider_totals():
    forecast = normalize_forecast({"forecastMonthlyRevenue": [1] * 6, "low": 1, "expected": 2, "high": 3})
    assert (forecast["low"], forecast["expected"], forecast["high"]) == (1, 2, 3)


def test_insight_prompt_mentions_currency_and_context():
    prompt = build_insight_prompt("property_page", {"revenue": 1200}, "USD")

    assert prompt.startswith('Analyze this property data: {"revenue": 1200}.')
    assert "use USD for ALL currency amounts" in prompt


async def test_insight_is_cached(db, fake_ai):
    fake_ai.responses.append(json.dumps({"title": "Strong month", "summary": "GHS5,000 earned"}))

    first = await generate_insight(db, "admin_dashboard", {"revenue": 5000})
    second = await generate_insight(db, "admin_dashboard", {"revenue": 5000})

    assert first == second == {"title": "Strong month", "summary": "GHS5,000 earned"}
    assert len(fake_ai.calls) == 1
    assert db.query(AIInsightCache).count() == 1


async def test_dollar_insight_is_regenerated(db, fake_ai):
    db.add(
        AIInsightCache(
            page_type="admin_dashboard",
            period=datetime.utcnow().strftime("%Y-%m"),
            content={"summary": "$5,000 earned"},
            expires_at=datetime.utcnow() + timedelta(hours=1),
        )
    )
    db.commit()
    fake_ai.responses.append(json.dumps({"summary": "GHS5,000 earned"}))

    insight = await generate_insight(db, "admin_dashboard", {})

    assert insight == {"summary": "GHS5,000 earned"}
    assert db.query(AIInsightCache).count() == 1


async def test_unparseable_insight_raises(db, fake_ai):
    fake_ai.responses.append("not json")

    with pytest.raises(AIProviderError, match="invalid response format"):
        await generate_insight(db, "admin_dashboard", {})


def test_missing_api_key(db):
    with pytest.raises(AIProviderError, match="API key not configured for openai"):
        get_ai_config(db)


def test_ai_config_reads_settings(db):
    upsert_setting(db, "AI_PROVIDER", "anthropic", "ai")
    upsert_setting(db, "ANTHROPIC_API_KEY", "sk-ant", "ai")
    db.commit()

    assert get_ai_config(db) == {"provider": "anthropic", "apiKey": "sk-ant", "model": None}


async def test_openai_call(db, monkeypatch):
    upsert_setting(db, "OPENAI_API_KEY", "sk-test", "ai")
    db.commit()
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"content": '{"ok": true}'}}]})

    monkeypatch.setattr(httpx, "AsyncClient", lambda *a, **kw: REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler)))

    text = await call_ai(db, [{"role": "user", "content": "hi"}])

    assert text == '{"ok": true}'
    body = json.loads(requests[0].content)
    assert body["model"] == "gpt-4o-mini"
    assert body["response_format"] == {"type": "json_object"}
    assert requests[0].headers["authorization"] == "Bearer sk-test"


async def test_openai_invalid_key(db, monkeypatch):
    upsert_setting(db, "OPENAI_API_KEY", "sk-bad", "ai")
    db.commit()
    monkeypatch.setattr(
        httpx,
        "AsyncClient",
        lambda *a, **kw: REAL_ASYNC_CLIENT(transport=httpx.MockTransport(lambda r: httpx.Response(401))),
    )

    with pytest.raises(AIProviderError, match="invalid or expired"):
        await call_ai(db, [{"role": "user", "content": "hi"}])


def test_forecast_without_history(client, admin_headers, prop):
    response = client.get(f"/ai/forecast?propertyId={prop.id}", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["expected"] == 0
    assert data["narrative"].startswith("No historical data available")


def test_insight_endpoint_reports_configuration_error(client, admin_headers):
    response = client.post("/ai/insights", json={"pageType": "admin_dashboard", "context": {}}, headers=admin_headers)

    assert response.status_code == 500
    assert "API key not configured" in response.json()["detail"]


def test_marketing_requires_target(client, admin_headers):
    assert client.post("/ai/marketing", json={}, headers=admin_headers).status_code == 400
