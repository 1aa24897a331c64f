import os

import pytest

from app.models import Document, InventoryItem, Owner
from app.routes.documents import safe_filename
from tests.conftest import auth_headers, make_user

# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


def create_item(client, headers, prop, **overrides):
    body = {"propertyId": prop.id, "name": "Toilet roll", "quantity": 4, "minimumQuantity": 6}
    body.update(overrides)
    return client.post("/inventory", json=body, headers=headers)


def test_consumable_below_minimum_is_low_stock(client, manager, prop):
    response = create_item(client, auth_headers(manager), prop)

    assert response.status_code == 201
    item = response.json()
    assert item["category"] == "CONSUMABLE"
    assert item["isLowStock"] is True


def test_equipment_is_never_low_stock(client, admin_headers, prop):
    item = create_item(client, admin_headers, prop, name="Kettle", category="EQUIPMENT", quantity=0).json()
    assert item["isLowStock"] is False


def test_low_stock_filter(client, admin_headers, prop):
    create_item(client, admin_headers, prop)
    create_item(client, admin_headers, prop, name="Soap", quantity=10, minimumQuantity=2)

    listed = client.get("/inventory?lowStock=true", headers=admin_headers).json()

    assert [i["name"] for i in listed] == ["Toilet roll"]


def test_restock_clears_low_stock(client, admin_headers, prop):
    item = create_item(client, admin_headers, prop).json()

    updated = client.patch(f"/inventory/{item['id']}", json={"quantity": 12}, headers=admin_headers).json()

    assert updated["isLowStock"] is False


@pytest.mark.parametrize("patch", [{"category": "FOOD"}, {"quantity": -1}])
def test_inventory_validation(client, admin_headers, prop, patch):
    assert create_item(client, admin_headers, prop, **patch).status_code == 422


def test_inventory_unknown_property(client, admin_headers, prop):
    response = client.post("/inventory", json={"propertyId": "ghost", "name": "x"}, headers=admin_headers)
    assert response.status_code == 404


def test_owner_cannot_manage_inventory(client, owner_user):
    assert client.get("/inventory", headers=auth_headers(owner_user)).status_code == 403


@pytest.fixture
def low_stock_alerts(monkeypatch):
    from app.routes import inventory

    sent = []

    async def record(db, item_id):
        sent.append(item_id)

    monkeypatch.setattr(inventory, "send_low_stock_notification", record)
    return sent


def test_adjust_records_history_and_alerts_once(client, manager, prop, low_stock_alerts):
    headers = auth_headers(manager)
    item = create_item(client, headers, prop, quantity=10, minimumQuantity=3).json()

    consumed = client.post(f"/inventory/{item['id']}/adjust", json={"quantity": 3, "notes": "Weekly count"}, headers=headers)
    client.post(f"/inventory/{item['id']}/adjust", json={"quantity": 2}, headers=headers)
    client.post(f"/inventory/{item['id']}/adjust", json={"quantity": 20}, headers=headers)

    assert consumed.status_code == 200
    assert consumed.json()["isLowStock"] is True
    assert consumed.json()["lastCheckedById"] == manager.id
    # only the first drop below the threshold alerts
    assert low_stock_alerts == [item["id"]]

    history = client.get(f"/inventory/{item['id']}/history", headers=headers).json()
    assert sorted(h["changeType"] for h in history) == ["consumed", "consumed", "restocked"]
    first = next(h for h in history if h["notes"] == "Weekly count")
    assert (first["previousQuantity"], first["newQuantity"]) == (10, 3)
    assert first["changedBy"] == {"id": manager.id, "name": "Kojo Manager"}


def test_adjust_rules(client, db, admin_headers, prop, low_stock_alerts):
    consumable = create_item(client, admin_headers, prop).json()
    kettle = create_item(client, admin_headers, prop, name="Kettle", category="EQUIPMENT").json()
    stranger = make_user(db, "kwame@hosthub.com", "MANAGER")

    missing = client.post(f"/inventory/{consumable['id']}/adjust", json={}, headers=admin_headers)
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Quantity is required"

    equipment = client.post(f"/inventory/{kettle['id']}/adjust", json={"quantity": 1}, headers=admin_headers)
    assert equipment.status_code == 400
    assert equipment.json()["detail"] == "Can only adjust quantity for consumable items"

    forbidden = client.post(
        f"/inventory/{consumable['id']}/adjust", json={"quantity": 1}, headers=auth_headers(stranger)
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"] == "You can only adjust inventory for properties you manage"

    unchanged = client.post(f"/inventory/{consumable['id']}/adjust", json={"quantity": 4}, headers=admin_headers)
    assert unchanged.status_code == 200
    history = client.get(f"/inventory/{consumable['id']}/history", headers=admin_headers).json()
    assert [h["changeType"] for h in history] == ["adjustment"]
    # already low before the recount
    assert low_stock_alerts == []


def test_owner_reads_history_of_own_property_only(client, db, owner_user, admin_headers, prop):
    item = create_item(client, admin_headers, prop).json()
    other_owner = Owner(name="Kofi", preferred_currency="GHS")
    db.add(other_owner)
    db.commit()
    outsider = make_user(db, "kofi@example.com", "OWNER", owner_id=other_owner.id)

    assert client.get(f"/inventory/{item['id']}/history", headers=auth_headers(owner_user)).json() == []
    assert client.get(f"/inventory/{item['id']}/history", headers=auth_headers(outsider)).status_code == 403
    assert client.post(
        f"/inventory/{item['id']}/adjust", json={"quantity": 1}, headers=auth_headers(owner_user)
    ).status_code == 403


async def test_low_stock_notification_goes_to_owner(db, prop, monkeypatch):
    from app.services import notification_service

    calls = []

    async def fake_send(db, **kwargs):
        calls.append(kwargs)
        return []

    monkeypatch.setattr(notification_service, "send_notification", fake_send)
    item = InventoryItem(property_id=prop.id, name="Soap", quantity=1, minimum_quantity=3, unit="bars")
    db.add(item)
    db.commit()

    await notification_service.send_low_stock_notification(db, item.id)

    assert calls[0]["owner_id"] == prop.owner_id
    assert calls[0]["notification_type"] == "INVENTORY_LOW_STOCK"
    assert calls[0]["channels"] == ["EMAIL", "SMS"]
    assert calls[0]["message"] == "Soap at Labone is running low: 1 bars left (minimum 3 bars)."


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def test_safe_filename_keeps_extension():
    name = safe_filename("Lease Agreement.PDF")
    assert name.endswith(".pdf")
    assert "Lease" not in name


@pytest.mark.parametrize("filename", ["", "bad|name.pdf", "a<b>.pdf", "what?.pdf"])
def test_safe_filename_rejects(filename):
    from fastapi import HTTPException

    with pytest.raises(HTTPException):
        safe_filename(filename)


def test_upload_document(client, manager, owner, uploads_dir):
    response = client.post(
        "/documents/upload",
        files={"file": ("lease.pdf", b"%PDF-1.4 lease", "application/pdf")},
        data={"type": "CONTRACT", "ownerId": owner.id},
        headers=auth_headers(manager),
    )

    assert response.status_code == 201
    document = response.json()
    assert document["title"] == "lease.pdf"
    assert document["fileSize"] == len(b"%PDF-1.4 lease")
    assert document["fileUrl"].startswith("/uploads/documents/")
    assert os.path.isfile(os.path.join(uploads_dir, document["fileUrl"].lstrip("/")))


def test_owner_cannot_upload(client, owner_user):
    response = client.post(
        "/documents/upload",
        files={"file": ("lease.pdf", b"x", "application/pdf")},
        headers=auth_headers(owner_user),
    )
    assert response.status_code == 403


def test_owner_sees_only_own_documents(client, db, owner_user):
    mine = Document(owner_id=owner_user.owner_id, title="Mine", file_url="/uploads/documents/a.pdf")
    theirs = Document(owner_id=None, title="Company", file_url="/uploads/documents/b.pdf")
    db.add_all([mine, theirs])
    db.commit()

    listed = client.get("/documents", headers=auth_headers(owner_user)).json()

    assert [d["title"] for d in listed] == ["Mine"]
    assert client.get(f"/documents/{theirs.id}", headers=auth_headers(owner_user)).status_code == 403


def test_manager_cannot_list_documents(client, manager):
    assert client.get("/documents", headers=auth_headers(manager)).status_code == 403


def test_delete_document_removes_file(client, admin_headers, manager, uploads_dir):
    document = client.post(
        "/documents/upload",
        files={"file": ("photo.jpg", b"jpeg", "image/jpeg")},
        headers=auth_headers(manager),
    ).json()
    path = os.path.join(uploads_dir, document["fileUrl"].lstrip("/"))

    assert client.delete(f"/documents/{document['id']}", headers=admin_headers).status_code == 200
    assert not os.path.exists(path)


def test_register_document_requires_title_and_url(client, admin_headers):
    response = client.post("/documents", json={"title": "x"}, headers=admin_headers)
    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


def test_contact_crud(client, admin_headers, manager):
    created = client.post(
        "/contacts",
        json={"name": "Kofi Plumbing", "phoneNumber": "+233 24 555 0000", "type": "PLUMBER"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    contact_id = created.json()["id"]

    assert client.get(f"/contacts/{contact_id}", headers=auth_headers(manager)).json()["name"] == "Kofi Plumbing"
    client.patch(f"/contacts/{contact_id}", json={"company": "Kofi & Sons"}, headers=admin_headers)
    assert client.get(f"/contacts/{contact_id}", headers=admin_headers).json()["company"] == "Kofi & Sons"
    assert client.delete(f"/contacts/{contact_id}", headers=admin_headers).status_code == 200
    assert client.get(f"/contacts/{contact_id}", headers=admin_headers).status_code == 404


def test_contact_rejects_bad_phone(client, admin_headers):
    response = client.post("/contacts", json={"name": "x", "phoneNumber": "call me"}, headers=admin_headers)
    assert response.status_code == 422


def test_manager_cannot_create_contact(client, manager):
    assert client.post("/contacts", json={"name": "x"}, headers=auth_headers(manager)).status_code == 403


def test_guest_contact_defaults_and_filters(client, manager):
    headers = auth_headers(manager)
    lead = client.post("/guest-contacts", json={"name": "Abena", "email": "abena@example.com"}, headers=headers).json()
    client.post("/guest-contacts", json={"name": "Kojo", "status": "CONVERTED", "type": "GUEST"}, headers=headers)

    assert lead["type"] == "LEAD"
    assert lead["status"] == "NEW"
    assert lead["createdById"] == manager.id
    converted = client.get("/guest-contacts?status=CONVERTED", headers=headers).json()
    assert [c["name"] for c in converted] == ["Kojo"]


def test_guest_contact_follow_up_is_stored_naive_utc(client, manager):
    headers = auth_headers(manager)
    lead = client.post("/guest-contacts", json={"name": "Abena"}, headers=headers).json()

    updated = client.patch(
        f"/guest-contacts/{lead['id']}",
        json={"followUpDate": "2026-03-20T10:00:00+02:00", "status": "FOLLOW_UP"},
        headers=headers,
    ).json()

    assert updated["followUpDate"] == "2026-03-20T08:00:00"
    assert updated["status"] == "FOLLOW_UP"


def test_guest_contact_rejects_unknown_status(client, manager):
    response = client.post("/guest-contacts", json={"name": "x", "status": "MAYBE"}, headers=auth_headers(manager))
    assert response.status_code == 422
