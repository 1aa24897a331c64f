import base64
import json
import os
from datetime import datetime

import pytest
from fastapi import HTTPException

from app.models import (
    AIInsightCache,
    Booking,
    Contact,
    Document,
    EmailTemplate,
    Expense,
    GuestContact,
    InventoryHistory,
    InventoryItem,
    Issue,
    IssueAttachment,
    IssueComment,
    Notification,
    Owner,
    OwnerTransaction,
    OwnerWallet,
    Payout,
    Property,
    RecurringTask,
    Report,
    Setting,
    SmsTemplate,
    Statement,
    StatementLine,
    Task,
    User,
)
from app.services.backup_service import backup_filename, create_backup, create_backup_archive, export_data
from app.services.restore_service import restore_archive, restore_backup, validate_backup
from app.services.settings_service import upsert_setting
from tests.conftest import auth_headers, make_user


@pytest.fixture
def seeded(db, prop, owner_user):
    booking = Booking(
        property_id=prop.id,
        owner_id=prop.owner_id,
        guest_name="Kwame",
        check_in=datetime(2026, 3, 2),
        check_out=datetime(2026, 3, 4),
        nights=2,
        base_amount=900,
        total_payout=900,
    )
    statement = Statement(
        owner_id=prop.owner_id,
        period_start=datetime(2026, 3, 1),
        period_end=datetime(2026, 3, 31),
        net_to_owner=765,
    )
    db.add_all([booking, statement])
    db.flush()
    db.add(StatementLine(statement_id=statement.id, type="booking", description="Kwame", amount=900, currency="GHS"))
    upsert_setting(db, "COMPANY_NAME", "HostHub Ghana", "general")
    upsert_setting(db, "SMTP_PASSWORD", "hunter2", "email")
    db.commit()
    return {"owner": prop.owner_id, "property": prop.id, "booking": booking.id, "statement": statement.id}


def as_json(backup):
    return json.loads(json.dumps(backup, default=str))


def test_backup_excludes_secrets_and_super_admins(db, seeded):
    make_user(db, "root@hosthub.com", "SUPER_ADMIN")

    backup = create_backup(db, include_files=False)

    assert backup["version"] == "1.1"
    assert backup["files"] == []
    keys = {s["key"] for s in backup["data"]["settings"]}
    assert "COMPANY_NAME" in keys
    assert "SMTP_PASSWORD" not in keys
    assert "root@hosthub.com" not in {u["email"] for u in backup["data"]["users"]}
    owner_row = backup["data"]["owners"][0]
    assert owner_row["wallet"]["ownerId"] == seeded["owner"]
    assert owner_row["user"]["email"] == "esi@example.com"
    assert [len(s["lines"]) for s in backup["data"]["statements"]] == [1]


def test_restore_with_clear_reproduces_backup(db, seeded):
    backup = as_json(create_backup(db, include_files=False))
    stray = Owner(name="Stray")
    db.add(stray)
    db.commit()
    stray_id = stray.id

    result = restore_backup(db, backup, clear_existing=True)

    assert result["success"] is True
    assert {o.id for o in db.query(Owner).all()} == {seeded["owner"]}
    assert db.get(Owner, stray_id) is None
    assert {p.id for p in db.query(Property).all()} == {seeded["property"]}
    assert {b.id for b in db.query(Booking).all()} == {seeded["booking"]}
    assert db.query(StatementLine).filter(StatementLine.statement_id == seeded["statement"]).count() == 1
    assert db.query(OwnerWallet).filter(OwnerWallet.owner_id == seeded["owner"]).count() == 1
    user = db.query(User).filter(User.email == "esi@example.com").one()
    assert user.owner_id == seeded["owner"]
    assert user.password_hash
    restored_booking = db.get(Booking, seeded["booking"])
    assert restored_booking.check_in == datetime(2026, 3, 2)


def test_restore_without_clear_upserts(db, seeded):
    backup = as_json(create_backup(db, include_files=False))
    booking = db.get(Booking, seeded["booking"])
    booking.guest_name = "Changed"
    db.commit()

    restore_backup(db, backup)

    db.expire_all()
    assert db.get(Booking, seeded["booking"]).guest_name == "Kwame"
    assert db.query(Statement).count() == 1


def test_clear_keeps_super_admin(db, admin):
    root = make_user(db, "root@hosthub.com", "SUPER_ADMIN")
    root_id, admin_id = root.id, admin.id

    restore_backup(db, {"version": "1.0", "data": {}}, clear_existing=True)

    assert db.get(User, root_id) is not None
    assert db.get(User, admin_id) is None


def test_version_1_0_backup_restores_every_table(db, seeded, manager):
    prop_id, owner_id = seeded["property"], seeded["owner"]
    issue = Issue(property_id=prop_id, title="Leak", reported_by_id=manager.id)
    task = Task(property_id=prop_id, title="Turnover", type="CLEANING", booking_id=seeded["booking"])
    item = InventoryItem(property_id=prop_id, name="Soap", quantity=2, minimum_quantity=3)
    recurring = RecurringTask(
        property_id=prop_id,
        title="Pool service",
        frequency="WEEKLY",
        start_date=datetime(2026, 3, 1),
        next_run_date=datetime(2026, 3, 8),
    )
    db.add_all(
        [issue, task, item, recurring, Contact(name="Yaw Plumber"), GuestContact(name="Abena", property_id=prop_id)]
    )
    db.flush()
    db.add_all(
        [
            IssueComment(issue_id=issue.id, user_id=manager.id, content="On my way"),
            IssueAttachment(issue_id=issue.id, file_url="/uploads/issues/leak.jpg"),
            InventoryHistory(
                inventory_item_id=item.id,
                previous_quantity=5,
                new_quantity=2,
                change_type="consumed",
                changed_by_id=manager.id,
            ),
            Expense(
                property_id=prop_id,
                owner_id=owner_id,
                date=datetime(2026, 3, 5),
                amount=40,
                category="CLEANING",
                linked_task_id=task.id,
            ),
            Payout(owner_id=owner_id, amount=100),
            OwnerTransaction(owner_id=owner_id, type="PAYOUT", amount=-100),
            Document(title="Lease", file_url="/uploads/documents/lease.pdf", owner_id=owner_id),
            Notification(owner_id=owner_id, type="CUSTOM", channel="EMAIL"),
            Report(name="Monthly revenue", type="REVENUE"),
            AIInsightCache(
                page_type="dashboard", period="2026-03", content={"summary": "ok"}, expires_at=datetime(2026, 4, 1)
            ),
            EmailTemplate(name="Welcome", type="welcome", subject="Hi", body="Hello {{ownerName}}"),
            SmsTemplate(name="Welcome", type="welcome", body="Hello {{ownerName}}"),
        ]
    )
    db.commit()
    before = export_data(db)
    backup = as_json(create_backup(db, include_files=False))
    backup["version"] = "1.0"

    restore_backup(db, backup, clear_existing=True)
    after = export_data(db)

    assert set(after) == set(before)
    for key, rows in before.items():
        assert rows, f"{key} was not seeded"
        assert {r["id"] for r in after[key]} == {r["id"] for r in rows}, key
    assert "SMTP_PASSWORD" not in {s["key"] for s in after["settings"]}

    def nested_ids(data, key, child):
        return {c["id"] for row in data[key] for c in (row[child] if isinstance(row[child], list) else [row[child]]) if c}

    for key, child in [
        ("statements", "lines"),
        ("issues", "comments"),
        ("issues", "attachments"),
        ("owners", "wallet"),
        ("owners", "user"),
    ]:
        assert nested_ids(after, key, child) == nested_ids(before, key, child), f"{key}.{child}"


def test_clear_data_endpoint_keeps_users_and_settings(client, db, seeded, manager):
    root = make_user(db, "root@hosthub.com", "SUPER_ADMIN")
    user_ids = {u.id for u in db.query(User).all()}

    response = client.post("/admin/clear-data", json={"confirm": True}, headers=auth_headers(root))

    assert response.status_code == 200
    assert response.json()["deleted"]["bookings"] == 1
    db.expire_all()
    assert db.query(Owner).count() == 0
    assert db.query(Property).count() == 0
    assert db.query(Booking).count() == 0
    assert {u.id for u in db.query(User).all()} == user_ids
    assert db.query(User).filter(User.email == "esi@example.com").one().owner_id is None
    assert db.query(Setting).filter(Setting.key == "COMPANY_NAME").count() == 1


def test_clear_data_needs_super_admin_and_confirmation(client, db, admin_headers):
    root = make_user(db, "root@hosthub.com", "SUPER_ADMIN")

    assert client.post("/admin/clear-data", json={"confirm": True}, headers=admin_headers).status_code == 403
    unconfirmed = client.post("/admin/clear-data", json={}, headers=auth_headers(root))
    assert unconfirmed.status_code == 400
    assert unconfirmed.json()["detail"] == "Confirmation required"


@pytest.mark.parametrize(
    "backup,detail",
    [
        ("nope", "Invalid backup format"),
        ({"version": "1.1"}, "Invalid backup format"),
        ({"version": "3.0", "data": {}}, "Unsupported backup version"),
    ],
)
def test_validate_backup(backup, detail):
    with pytest.raises(HTTPException) as exc:
        validate_backup(backup)
    assert exc.value.status_code == 400
    assert exc.value.detail == detail


def test_rows_with_missing_parents(db, owner):
    backup = {
        "version": "1.0",
        "data": {
            "properties": [
                {"id": "orphan", "ownerId": "ghost", "name": "Nowhere"},
                {"id": "kept", "ownerId": owner.id, "managerId": "ghost-manager", "name": "Osu Flat"},
            ]
        },
    }

    restore_backup(db, backup)

    assert db.get(Property, "orphan") is None
    kept = db.get(Property, "kept")
    assert kept.owner_id == owner.id
    assert kept.manager_id is None


def test_user_with_clashing_email_is_skipped(db, admin):
    backup = {"version": "1.1", "data": {"users": [{"id": "other", "email": admin.email, "role": "ADMIN"}]}}

    restore_backup(db, backup)

    assert db.get(User, "other") is None
    assert db.query(User).filter(User.email == admin.email).count() == 1


def test_existing_setting_is_updated_in_place(db):
    upsert_setting(db, "COMPANY_NAME", "Old", "general")
    db.commit()

    restore_backup(db, {"version": "1.1", "data": {"settings": [{"id": "new-id", "key": "COMPANY_NAME", "value": "New"}]}})

    rows = db.query(Setting).filter(Setting.key == "COMPANY_NAME").all()
    assert [r.value for r in rows] == ["New"]


def test_files_restored_under_uploads_only(db, uploads_dir):
    payload = base64.b64encode(b"hello").decode()
    backup = {
        "version": "1.1",
        "data": {},
        "files": [
            {"path": "uploads/documents/note.txt", "data": payload},
            {"path": "uploads/../../escape.txt", "data": payload},
            {"path": "elsewhere/x.txt", "data": payload},
        ],
    }

    result = restore_backup(db, backup)

    assert result["filesRestored"] == 1
    assert result["filesSkipped"] == 2
    with open(os.path.join(uploads_dir, "uploads", "documents", "note.txt"), "rb") as f:
        assert f.read() == b"hello"


def test_archive_round_trip(db, seeded, tmp_path):
    path = tmp_path / "hosthub.tar.gz"
    path.write_bytes(create_backup_archive(db))
    db.add(Owner(name="Stray"))
    db.commit()

    result = restore_archive(db, str(path), "hosthub.tar.gz")

    assert result["source"] == "database.json"
    assert result["counts"]["owners"] == 1
    assert result["counts"]["bookings"] == 1
    assert {o.id for o in db.query(Owner).all()} == {seeded["owner"]}


def test_archive_rejects_unknown_extension(db, tmp_path):
    path = tmp_path / "backup.rar"
    path.write_bytes(b"x")
    with pytest.raises(HTTPException) as exc:
        restore_archive(db, str(path), "backup.rar")
    assert exc.value.status_code == 400


def test_backup_filename():
    assert backup_filename(datetime(2026, 3, 5)) == "hosthub-backup-2026-03-05.json"
    assert backup_filename(datetime(2026, 3, 5), "tar.gz") == "hosthub-backup-2026-03-05.tar.gz"


def test_backup_endpoint(client, admin_headers, seeded):
    response = client.get("/admin/backup", headers=admin_headers)

    assert response.status_code == 200
    assert "attachment; filename=\"hosthub-backup-" in response.headers["content-disposition"]
    assert response.json()["data"]["bookings"][0]["id"] == seeded["booking"]


def test_restore_endpoint_rejects_bad_version(client, admin_headers):
    response = client.post("/admin/restore", json={"backup": {"version": "0.9", "data": {}}}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Unsupported backup version"


def test_backup_requires_admin(client, manager):
    assert client.get("/admin/backup", headers=auth_headers(manager)).status_code == 403
