import importlib
from datetime import datetime, timedelta

import pytest

from app.models import Booking, Notification, OwnerWallet, Task
from tests.conftest import auth_headers


def booking_payload(prop, **overrides):
    payload = {
        "propertyId": prop.id,
        "source": "AIRBNB",
        "guestName": "Kwame Asante",
        "checkInDate": "2026-04-01T14:00:00Z",
        "checkOutDate": "2026-04-04T11:00:00Z",
        "baseAmount": 3000,
        "cleaningFee": 300,
        "platformFees": 450,
        "taxes": 50,
        "currency": "GHS",
    }
    payload.update(overrides)
    return payload


def test_create_booking_derives_totals(client, db, admin_headers, prop):
    response = client.post("/bookings", json=booking_payload(prop), headers=admin_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["nights"] == 2
    assert data["totalPayout"] == pytest.approx(2800)
    assert data["totalPayoutInBase"] == pytest.approx(2800 * 0.08)
    assert data["fxRateToBase"] == pytest.approx(0.08)
    assert data["ownerId"] == prop.owner_id
    assert data["status"] == "UPCOMING"
    assert data["property"]["name"] == "Labone Villa"
    assert data["checkInDate"] == data["checkIn"]


def test_create_booking_auto_creates_cleaning_task(client, db, admin_headers, prop):
    booking_id = client.post("/bookings", json=booking_payload(prop), headers=admin_headers).json()["id"]

    tasks = db.query(Task).filter(Task.booking_id == booking_id).all()
    assert len(tasks) == 1
    assert tasks[0].type == "CLEANING"
    assert tasks[0].title == "Cleaning for Labone Villa"
    assert tasks[0].due_at == datetime(2026, 4, 4, 11, 0)


def test_cleaning_task_can_be_skipped(client, db, admin_headers, prop):
    payload = booking_payload(prop, autoCreateCleaningTask=False)
    booking_id = client.post("/bookings", json=payload, headers=admin_headers).json()["id"]

    assert db.query(Task).filter(Task.booking_id == booking_id).count() == 0


def test_owner_received_payment_accrues_commission(client, db, admin_headers, prop):
    payload = booking_payload(prop, paymentReceivedBy="OWNER")
    response = client.post("/bookings", json=payload, headers=admin_headers)
    assert response.status_code == 201

    wallet = db.query(OwnerWallet).filter(OwnerWallet.owner_id == prop.owner_id).one()
    # 15% of base + cleaning
    assert wallet.commissions_payable == pytest.approx(3300 * 0.15)


def test_switching_receiver_back_to_company_reverses_commission(client, db, admin_headers, prop):
    payload = booking_payload(prop, paymentReceivedBy="OWNER")
    booking_id = client.post("/bookings", json=payload, headers=admin_headers).json()["id"]

    response = client.patch(
        f"/bookings/{booking_id}", json={"paymentReceivedBy": "COMPANY"}, headers=admin_headers
    )
    assert response.status_code == 200

    wallet = db.query(OwnerWallet).filter(OwnerWallet.owner_id == prop.owner_id).one()
    assert wallet.commissions_payable == pytest.approx(0)


def test_update_recomputes_totals(client, db, admin_headers, prop):
    booking_id = client.post("/bookings", json=booking_payload(prop), headers=admin_headers).json()["id"]

    data = client.patch(f"/bookings/{booking_id}", json={"baseAmount": 4000}, headers=admin_headers).json()

    assert data["totalPayout"] == pytest.approx(3800)
    assert data["totalPayoutInBase"] == pytest.approx(3800 * 0.08)


def test_manager_cannot_book_unmanaged_property(client, db, prop):
    from tests.conftest import make_user

    other_manager = make_user(db, "other@hosthub.com", "MANAGER")
    response = client.post("/bookings", json=booking_payload(prop), headers=auth_headers(other_manager))

    assert response.status_code == 403
    assert response.json()["detail"] == "You can only create bookings for properties you manage"


def test_owner_cannot_create_bookings(client, owner_user, prop):
    response = client.post("/bookings", json=booking_payload(prop), headers=auth_headers(owner_user))
    assert response.status_code == 403


def test_unknown_property_is_404(client, admin_headers, prop):
    payload = booking_payload(prop, propertyId="missing")
    response = client.post("/bookings", json=payload, headers=admin_headers)
    assert response.status_code == 404


def test_invalid_source_is_rejected(client, admin_headers, prop):
    response = client.post("/bookings", json=booking_payload(prop, source="VRBO"), headers=admin_headers)
    assert response.status_code == 422


def test_owner_only_sees_own_bookings(client, db, admin_headers, owner_user, prop):
    client.post("/bookings", json=booking_payload(prop), headers=admin_headers)

    response = client.get("/bookings", headers=auth_headers(owner_user))

    assert response.status_code == 200
    assert [b["ownerId"] for b in response.json()] == [prop.owner_id]


def test_owner_without_linked_owner_is_forbidden(client, db):
    from tests.conftest import make_user

    orphan = make_user(db, "orphan@example.com", "OWNER")
    response = client.get("/bookings", headers=auth_headers(orphan))

    assert response.status_code == 403
    assert response.json()["detail"] == "No owner linked"


def test_manager_check_in(client, db, admin_headers, manager, prop):
    booking_id = client.post("/bookings", json=booking_payload(prop), headers=admin_headers).json()["id"]

    response = client.post(
        f"/bookings/{booking_id}/check-in", json={"notes": "Early arrival"}, headers=auth_headers(manager)
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "CHECKED_IN"
    assert data["checkedInAt"] is not None
    assert data["checkedInById"] == manager.id
    assert data["notes"] == "Early arrival"


def test_check_in_twice_is_rejected(client, db, admin_headers, prop):
    booking_id = client.post("/bookings", json=booking_payload(prop), headers=admin_headers).json()["id"]
    client.post(f"/bookings/{booking_id}/check-in", headers=admin_headers)

    response = client.post(f"/bookings/{booking_id}/check-in", headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Can only check in upcoming bookings"


def test_delete_detaches_tasks(client, db, admin_headers, prop):
    booking_id = client.post("/bookings", json=booking_payload(prop), headers=admin_headers).json()["id"]

    assert client.delete(f"/bookings/{booking_id}", headers=admin_headers).json() == {"success": True}

    assert db.query(Booking).filter(Booking.id == booking_id).count() == 0
    assert db.query(Task).filter(Task.property_id == prop.id).one().booking_id is None


def test_booking_created_notification_is_recorded(client, db, admin_headers, prop):
    client.post("/bookings", json=booking_payload(prop), headers=admin_headers)

    notification = db.query(Notification).filter(Notification.type == "BOOKING_CREATED").one()
    # No SMTP configured: the failure is stored, the request still succeeded
    assert notification.status == "FAILED"
    assert notification.channel == "EMAIL"


def test_listing_filters_by_date_range(client, db, admin_headers, prop):
    client.post("/bookings", json=booking_payload(prop), headers=admin_headers)
    later = booking_payload(
        prop,
        checkInDate=(datetime(2026, 6, 1)).isoformat(),
        checkOutDate=(datetime(2026, 6, 1) + timedelta(days=3)).isoformat(),
    )
    client.post("/bookings", json=later, headers=admin_headers)

    response = client.get(
        "/bookings", params={"startDate": "2026-05-01T00:00:00"}, headers=admin_headers
    )

    assert [b["nights"] for b in response.json()] == [3]


# ---------------------------------------------------------------------------
# Bulk actions
# ---------------------------------------------------------------------------


@pytest.fixture
def two_bookings(client, admin_headers, prop):
    first = client.post("/bookings", json=booking_payload(prop, autoCreateCleaningTask=False), headers=admin_headers).json()
    second = client.post(
        "/bookings",
        json=booking_payload(
            prop,
            guestName="Efua",
            checkInDate="2026-04-10T14:00:00Z",
            checkOutDate="2026-04-12T11:00:00Z",
            autoCreateCleaningTask=False,
        ),
        headers=admin_headers,
    ).json()
    return [first["id"], second["id"]]


def test_bulk_update_status(client, db, admin_headers, two_bookings):
    response = client.post(
        "/bookings/bulk",
        json={"ids": two_bookings, "action": "updateStatus", "data": {"status": "COMPLETED"}},
        headers=admin_headers,
    )

    assert response.json() == {"success": True, "message": "Updated 2 booking(s)", "count": 2}
    db.expire_all()
    assert {b.status for b in db.query(Booking).all()} == {"COMPLETED"}


def test_bulk_delete(client, db, admin_headers, two_bookings):
    response = client.post(
        "/bookings/bulk", json={"ids": two_bookings[:1] + ["ghost"], "action": "delete"}, headers=admin_headers
    )

    assert response.json()["count"] == 1
    db.expire_all()
    assert [b.id for b in db.query(Booking).all()] == two_bookings[1:]


def test_bulk_export_csv(client, admin_headers, two_bookings):
    response = client.post("/bookings/bulk", json={"ids": two_bookings, "action": "export"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="bookings-export-' in response.headers["content-disposition"]
    rows = response.text.strip().splitlines()
    assert rows[0].startswith('"ID","Property","Owner","Guest Name"')
    assert len(rows) == 3
    assert '"Kwame Asante"' in rows[1]
    assert '"2026-04-10"' in rows[2]


def test_bulk_send_notifications(client, admin_headers, two_bookings, monkeypatch):
    bookings_router = importlib.import_module("app.domain.bookings.router")

    sent = []

    async def record(db, booking_id, event, owner_id):
        if booking_id == two_bookings[1]:
            raise RuntimeError("smtp down")
        sent.append((booking_id, event))

    monkeypatch.setattr(bookings_router, "send_booking_notification", record)

    body = client.post(
        "/bookings/bulk", json={"ids": two_bookings, "action": "sendNotifications"}, headers=admin_headers
    ).json()

    assert sent == [(two_bookings[0], "reminder")]
    assert body["message"] == "Sent notifications for 1 booking(s), 1 failed"
    assert (body["successCount"], body["failCount"]) == (1, 1)


@pytest.mark.parametrize(
    "body,detail",
    [
        ({"ids": [], "action": "delete"}, "No booking IDs provided"),
        ({"ids": ["x"]}, "No action specified"),
        ({"ids": ["x"], "action": "archive"}, "Invalid action"),
        ({"ids": ["x"], "action": "updateStatus", "data": {}}, "Status is required"),
    ],
)
def test_bulk_validation(client, admin_headers, body, detail):
    response = client.post("/bookings/bulk", json=body, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == detail


def test_bulk_requires_admin(client, manager):
    response = client.post("/bookings/bulk", json={"ids": ["x"], "action": "delete"}, headers=auth_headers(manager))
    assert response.status_code == 403
