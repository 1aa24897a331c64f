import pytest

from app.currency import get_fx_rates
from app.models import Setting, SmsTemplate
from app.services.template_service import (
    DEFAULT_SMS_TEMPLATES,
    render_email_template_by_type,
    render_sms_template_by_type,
    replace_email_variables,
    replace_sms_variables,
    seed_default_sms_templates,
)
from tests.conftest import auth_headers

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def stored(db, key):
    row = db.query(Setting).filter(Setting.key == key).first()
    return row.value if row else None


def test_save_settings_maps_keys_and_serializes(client, db, admin_headers):
    response = client.post(
        "/settings",
        json={"deywuroUsername": "hosthub", "smsEnabled": False, "bookingReminderHours": 12, "unknown": "x"},
        headers=admin_headers,
    )

    assert response.json() == {"success": True}
    assert stored(db, "DEYWURO_USERNAME") == "hosthub"
    assert stored(db, "SMS_ENABLED") == "false"
    assert stored(db, "BOOKING_REMINDER_HOURS") == "12"
    assert db.query(Setting).filter(Setting.key == "DEYWURO_USERNAME").one().category == "sms"
    assert db.query(Setting).count() == 3


def test_usd_to_ghs_rate_is_inverted(client, db, admin_headers):
    get_fx_rates(db)  # warm the cache

    client.post("/settings", json={"fxRateGHS": "12.5", "fxRateFormat": "usdToGhs"}, headers=admin_headers)

    assert stored(db, "FX_RATE_GHS") == "0.080000"
    assert stored(db, "FX_RATE_FORMAT") == "usdToGhs"

    client.post("/settings", json={"fxRateGHS": "10", "fxRateFormat": "usdToGhs"}, headers=admin_headers)
    rates = client.get("/settings/fx-rates", headers=admin_headers).json()
    assert rates["GHS"] == pytest.approx(0.1)


def test_ghs_to_usd_rate_is_stored_as_is(client, db, admin_headers):
    client.post("/settings", json={"fxRateGHS": "0.09", "fxRateFormat": "ghsToUsd"}, headers=admin_headers)
    assert stored(db, "FX_RATE_GHS") == "0.09"


def test_get_settings_returns_plain_values(client, admin_headers):
    client.post("/settings", json={"smtpPassword": "pw", "smtpHost": "smtp.example.com"}, headers=admin_headers)

    data = client.get("/settings", headers=admin_headers).json()

    assert data["SMTP_PASSWORD"] == "pw"
    assert data["SMTP_HOST"] == "smtp.example.com"


def test_settings_require_admin(client, owner_user):
    assert client.get("/settings", headers=auth_headers(owner_user)).status_code == 403


def test_test_sms_without_credentials(client, admin_headers):
    response = client.post("/settings/test-sms", json={"phoneNumber": "0241234567"}, headers=admin_headers)
    assert response.status_code == 400
    assert "Deywuro credentials are not configured" in response.json()["detail"]


def test_test_email_without_smtp(client, admin_headers):
    response = client.post("/settings/test-email", json={"email": "esi@example.com"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"].startswith("SMTP configuration is incomplete")


def test_test_whatsapp_without_credentials(client, admin_headers):
    response = client.post("/settings/test-whatsapp", json={"phoneNumber": "0241234567"}, headers=admin_headers)
    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def test_replace_sms_variables_is_exact():
    text = "Hi {{ownerName}}, {{ ownerName }} {{missing}}"
    assert replace_sms_variables(text, {"ownerName": "Esi"}) == "Hi Esi, {{ ownerName }} {{missing}}"


def test_replace_email_variables_allows_whitespace():
    text = "Hi {{ownerName}} / {{  ownerName }} / {{amount}}"
    assert replace_email_variables(text, {"ownerName": "Esi", "amount": None}) == "Hi Esi / Esi / "


def test_seed_is_idempotent(db):
    assert seed_default_sms_templates(db) == len(DEFAULT_SMS_TEMPLATES)
    assert seed_default_sms_templates(db) == 0
    assert db.query(SmsTemplate).filter(SmsTemplate.is_default.is_(True)).count() == len(DEFAULT_SMS_TEMPLATES)


def test_render_by_type_needs_active_default(db):
    db.add(SmsTemplate(name="Off", type="statement", body="off", is_default=True, is_active=False))
    db.commit()

    assert render_sms_template_by_type(db, "statement", {}) is None
    assert render_email_template_by_type(db, "statement", {}) is None


def test_only_one_default_per_type(client, db, admin_headers):
    def create(name, default):
        return client.post(
            "/sms-templates",
            json={"name": name, "type": "statement", "body": "Hi {{ownerName}}", "isDefault": default},
            headers=admin_headers,
        ).json()

    first = create("First", True)
    second = create("Second", True)

    db.expire_all()
    assert db.get(SmsTemplate, first["id"]).is_default is False
    assert db.get(SmsTemplate, second["id"]).is_default is True

    client.patch(f"/sms-templates/{first['id']}", json={"isDefault": True}, headers=admin_headers)
    db.expire_all()
    assert db.get(SmsTemplate, first["id"]).is_default is True
    assert db.get(SmsTemplate, second["id"]).is_default is False


def test_email_template_body_is_sanitized(client, admin_headers):
    response = client.post(
        "/email-templates",
        json={
            "name": "Statement",
            "type": "statement",
            "subject": "Statement for {{ownerName}}",
            "body": "<p>Hi {{ownerName}}</p><script>alert(1)</script>",
        },
        headers=admin_headers,
    )

    assert response.status_code == 201
    body = response.json()["body"]
    assert "<script" not in body
    assert "<p>Hi {{ownerName}}</p>" in body


def test_create_requires_fields(client, admin_headers):
    response = client.post("/email-templates", json={"name": "x"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Name, type, subject and body are required"


def test_sms_preview(client, admin_headers):
    response = client.post(
        "/sms-templates/preview",
        json={"body": "Hi {{ownerName}}", "variables": {"ownerName": "Esi"}},
        headers=admin_headers,
    )
    assert response.json() == {"message": "Hi Esi", "length": 6}


def test_email_preview_renders_html(client, admin_headers):
    response = client.post(
        "/email-templates/preview",
        json={"subject": "Hello {{ownerName}}", "body": "<p>Net {{amount}}</p>", "variables": {"ownerName": "Esi", "amount": "10"}},
        headers=admin_headers,
    )

    data = response.json()
    assert data["subject"] == "Hello Esi"
    assert "Net 10" in data["html"]
    assert "<html" in data["html"].lower()


def test_sms_variables_catalog(client, admin_headers):
    response = client.get("/sms-templates/variables?type=payout_notification", headers=admin_headers)
    assert response.json()["variables"] == ["ownerName", "amount", "currency", "payoutDate", "payoutId"]
