import httpx
import pytest

from app.models import Notification, Owner, SmsTemplate
from app.services import notification_service
from app.services.notification_service import display_date, resend_notification, send_notification
from app.services.settings_service import upsert_setting
from tests.conftest import auth_headers

REAL_ASYNC_CLIENT = httpx.AsyncClient


@pytest.fixture
def deywuro(monkeypatch):
    """Route Deywuro calls to an in-memory handler and record the form bodies"""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(dict(httpx.QueryParams(request.content.decode())))
        return httpx.Response(200, json={"code": 0, "message": "msg-123"})

    def client_factory(*args, **kwargs):
        return REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler))

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)
    return calls


@pytest.fixture
def sms_credentials(db):
    upsert_setting(db, "DEYWURO_USERNAME", "hosthub", "sms")
    upsert_setting(db, "DEYWURO_PASSWORD", "secret", "sms")
    db.commit()


def test_display_date():
    from datetime import datetime

    assert display_date(datetime(2026, 3, 5)) == "3/5/2026"
    assert display_date(None) == "N/A"


async def test_unknown_owner_raises(db):
    with pytest.raises(ValueError):
        await send_notification(db, "missing", "CUSTOM", ["EMAIL"], "Hi", "Hello")


async def test_missing_contact_marks_channel_failed(db):
    owner = Owner(name="No Contact")
    db.add(owner)
    db.commit()

    results = await send_notification(db, owner.id, "CUSTOM", ["SMS", "WHATSAPP"], "Hi", "Hello")

    assert [r["status"] for r in results] == ["FAILED", "FAILED"]
    assert results[0]["error"] == "No phone number available for owner"
    assert results[1]["error"] == "No WhatsApp number available for owner"
    assert db.query(Notification).filter(Notification.owner_id == owner.id).count() == 2


async def test_email_without_smtp_is_recorded_not_raised(db, owner):
    results = await send_notification(db, owner.id, "CUSTOM", ["EMAIL"], "Hi", "Hello")

    assert results[0]["status"] == "FAILED"
    assert "SMTP configuration is incomplete" in results[0]["error"]
    record = db.query(Notification).filter(Notification.id == results[0]["notificationId"]).one()
    assert record.payload["title"] == "Hi"
    assert record.sent_at is None


async def test_sms_sent_through_deywuro(db, owner, deywuro, sms_credentials):
    results = await send_notification(
        db, owner.id, "CUSTOM", ["SMS"], "Hi", "Your statement is ready", metadata={"k": "v"}
    )

    assert results[0]["status"] == "SENT"
    assert deywuro[0]["destination"] == "233241234567"
    assert deywuro[0]["message"] == "Your statement is ready"
    record = db.query(Notification).filter(Notification.id == results[0]["notificationId"]).one()
    assert record.sent_at is not None
    assert record.payload["metadata"] == {"k": "v"}


async def test_sms_uses_default_template_when_available(db, owner, deywuro, sms_credentials):
    db.add(
        SmsTemplate(
            name="Payout",
            type="payout_notification",
            body="Hi {{ownerName}}, {{currency}} {{amount}} is on its way",
            is_default=True,
            is_active=True,
        )
    )
    db.commit()

    await send_notification(
        db,
        owner.id,
        "PAYOUT_MADE",
        ["SMS"],
        "Payout",
        "fallback text",
        template_type="payout_notification",
        template_variables={"ownerName": "Esi", "currency": "GHS", "amount": "50.00"},
    )

    assert deywuro[0]["message"] == "Hi Esi, GHS 50.00 is on its way"


async def test_channel_exception_does_not_propagate(db, owner, monkeypatch):
    async def boom(*args, **kwargs):
        raise RuntimeError("gateway exploded")

    monkeypatch.setattr(notification_service, "send_sms", boom)

    results = await send_notification(db, owner.id, "CUSTOM", ["SMS"], "Hi", "Hello")

    assert results == [
        {"channel": "SMS", "notificationId": results[0]["notificationId"], "status": "FAILED", "error": "gateway exploded"}
    ]


async def test_resend_reuses_payload(db, owner, deywuro, sms_credentials):
    first = await send_notification(db, owner.id, "CUSTOM", ["SMS"], "Hi", "Again please")
    original = db.query(Notification).filter(Notification.id == first[0]["notificationId"]).one()

    results = await resend_notification(db, original)

    assert results[0]["status"] == "SENT"
    assert results[0]["notificationId"] != original.id
    assert [c["message"] for c in deywuro] == ["Again please", "Again please"]


def test_send_endpoint_requires_admin(client, owner_user):
    response = client.post(
        "/notifications/send",
        json={"ownerId": owner_user.owner_id, "type": "CUSTOM", "channels": ["EMAIL"], "title": "t", "message": "m"},
        headers=auth_headers(owner_user),
    )
    assert response.status_code == 403


def test_send_endpoint_rejects_unknown_channel(client, admin_headers, owner):
    response = client.post(
        "/notifications/send",
        json={"ownerId": owner.id, "type": "CUSTOM", "channels": ["PIGEON"], "title": "t", "message": "m"},
        headers=admin_headers,
    )
    assert response.status_code == 422


def test_send_endpoint_unknown_owner_is_404(client, admin_headers):
    response = client.post(
        "/notifications/send",
        json={"ownerId": "ghost", "type": "CUSTOM", "channels": ["EMAIL"], "title": "t", "message": "m"},
        headers=admin_headers,
    )
    assert response.status_code == 404


def test_owner_lists_only_own_notifications(client, db, owner_user):
    other = Owner(name="Other")
    db.add(other)
    db.flush()
    db.add(Notification(owner_id=other.id, type="CUSTOM", channel="EMAIL", status="SENT"))
    db.add(Notification(owner_id=owner_user.owner_id, type="CUSTOM", channel="EMAIL", status="SENT"))
    db.commit()

    response = client.get("/notifications", headers=auth_headers(owner_user))

    assert response.status_code == 200
    assert [n["ownerId"] for n in response.json()] == [owner_user.owner_id]
