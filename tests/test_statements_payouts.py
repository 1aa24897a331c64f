import os
from datetime import datetime

import pytest

from app.domain.statements.service import compute_statement
from app.models import Booking, Expense, Owner, OwnerTransaction, OwnerWallet, Statement
from tests.conftest import auth_headers


def add_booking(db, prop, check_in, base, cleaning=0, currency="GHS", received_by="COMPANY"):
    booking = Booking(
        property_id=prop.id,
        owner_id=prop.owner_id,
        check_in=check_in,
        check_out=check_in.replace(day=check_in.day + 2),
        nights=2,
        currency=currency,
        base_amount=base,
        cleaning_fee=cleaning,
        total_payout=base + cleaning,
        payment_received_by=received_by,
    )
    db.add(booking)
    db.commit()
    return booking


def add_expense(db, prop, date, amount, paid_by="company", currency="GHS"):
    expense = Expense(
        property_id=prop.id,
        owner_id=prop.owner_id,
        date=date,
        category="REPAIRS",
        amount=amount,
        currency=currency,
        paid_by=paid_by,
    )
    db.add(expense)
    db.commit()
    return expense


def generate(client, headers, owner_id, **extra):
    body = {"ownerId": owner_id, "periodStart": "2026-03-01T00:00:00Z", "periodEnd": "2026-03-31T23:59:59Z"}
    body.update(extra)
    return client.post("/statements/generate", json=body, headers=headers)


def test_compute_statement_splits_by_receiver(db, prop):
    company = add_booking(db, prop, datetime(2026, 3, 2), 1000, 100)
    owner_held = add_booking(db, prop, datetime(2026, 3, 10), 500, received_by="OWNER")
    owner_paid = add_expense(db, prop, datetime(2026, 3, 5), 80, paid_by="owner")
    company_paid = add_expense(db, prop, datetime(2026, 3, 6), 200, paid_by="company")

    totals, lines = compute_statement(db, [company, owner_held], [owner_paid, company_paid], "GHS")

    assert totals["company_revenue"] == pytest.approx(1100)
    assert totals["owner_revenue"] == pytest.approx(500)
    assert totals["gross_revenue"] == pytest.approx(1600)
    assert totals["company_commission"] == pytest.approx(165)
    assert totals["owner_commission"] == pytest.approx(75)
    assert totals["commission_amount"] == pytest.approx(240)
    assert totals["total_expenses"] == pytest.approx(280)
    # (1100 - 165 - 200) - 75 + 80
    assert totals["net_to_owner"] == pytest.approx(740)
    assert totals["closing_balance"] == totals["net_to_owner"]

    assert [line["type"] for line in lines] == ["booking", "booking", "expense", "expense", "commission"]
    assert "[Payment received by Owner]" in lines[1]["description"]
    assert lines[2]["amount_in_display_currency"] == pytest.approx(80)
    assert lines[3]["amount_in_display_currency"] == pytest.approx(-200)
    assert lines[4]["amount"] == pytest.approx(-240)


def test_compute_statement_converts_to_display_currency(db, prop):
    booking = add_booking(db, prop, datetime(2026, 3, 2), 100, currency="USD")

    totals, lines = compute_statement(db, [booking], [], "GHS")

    assert totals["gross_revenue"] == pytest.approx(1250)
    assert lines[0]["amount"] == 100
    assert lines[0]["currency"] == "USD"


def test_unknown_expense_payer_is_ignored(db, prop):
    odd = add_expense(db, prop, datetime(2026, 3, 5), 80, paid_by="guest")

    totals, lines = compute_statement(db, [], [odd], "GHS")

    assert totals["total_expenses"] == 0
    assert [line["type"] for line in lines] == ["commission"]


def test_generate_uses_period_and_owner_currency(client, db, admin_headers, prop):
    add_booking(db, prop, datetime(2026, 3, 2), 1000)
    add_booking(db, prop, datetime(2026, 4, 2), 9999)

    response = generate(client, admin_headers, prop.owner_id)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "DRAFT"
    assert data["displayCurrency"] == "GHS"
    assert data["grossRevenue"] == pytest.approx(1000)
    assert len(data["lines"]) == 2


def test_generate_rejects_inverted_period(client, admin_headers, owner):
    response = generate(client, admin_headers, owner.id, periodStart="2026-04-01T00:00:00Z")
    assert response.status_code == 422


def test_finalize_posts_net_to_ledger(client, db, admin_headers, prop, uploads_dir):
    add_booking(db, prop, datetime(2026, 3, 2), 1000)
    statement_id = generate(client, admin_headers, prop.owner_id).json()["id"]

    response = client.post(f"/statements/{statement_id}/finalize", headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.content.startswith(b"%PDF")
    assert os.path.exists(os.path.join(uploads_dir, "uploads", "statements", f"statement-{statement_id}.pdf"))

    statement = db.query(Statement).filter(Statement.id == statement_id).one()
    assert statement.status == "FINALIZED"
    assert statement.pdf_url == f"/uploads/statements/statement-{statement_id}.pdf"

    transaction = db.query(OwnerTransaction).filter(OwnerTransaction.reference_id == statement_id).one()
    assert transaction.type == "STATEMENT_NET"
    assert transaction.amount == pytest.approx(850)
    wallet = db.query(OwnerWallet).filter(OwnerWallet.owner_id == prop.owner_id).one()
    db.refresh(wallet)
    assert wallet.balance == pytest.approx(850)


def test_finalize_twice_is_rejected(client, db, admin_headers, owner):
    statement_id = generate(client, admin_headers, owner.id).json()["id"]
    client.post(f"/statements/{statement_id}/finalize", headers=admin_headers)

    response = client.post(f"/statements/{statement_id}/finalize", headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Statement already finalized"


def test_finalized_statement_cannot_be_deleted(client, admin_headers, owner):
    statement_id = generate(client, admin_headers, owner.id).json()["id"]
    client.post(f"/statements/{statement_id}/finalize", headers=admin_headers)

    assert client.delete(f"/statements/{statement_id}", headers=admin_headers).status_code == 400


def test_owner_reads_own_statements_only(client, db, admin_headers, owner_user):
    statement_id = generate(client, admin_headers, owner_user.owner_id).json()["id"]

    listed = client.get("/statements", headers=auth_headers(owner_user)).json()
    assert [s["id"] for s in listed] == [statement_id]
    assert client.get(f"/statements/{statement_id}/pdf", headers=auth_headers(owner_user)).status_code == 200


def test_payout_records_negative_transaction(client, db, admin_headers, owner):
    response = client.post(
        "/payouts",
        json={"ownerId": owner.id, "amount": 300.456, "method": "MoMo", "reference": "TX-1"},
        headers=admin_headers,
    )

    assert response.status_code == 201
    payout = response.json()
    assert payout["amount"] == pytest.approx(300.46)

    transaction = db.query(OwnerTransaction).filter(OwnerTransaction.reference_id == payout["id"]).one()
    assert transaction.type == "PAYOUT"
    assert transaction.amount == pytest.approx(-300.46)
    assert transaction.notes == f"Payout via MoMo - Ref: TX-1 (Payout ID: {payout['id']})"
    wallet = db.query(OwnerWallet).filter(OwnerWallet.owner_id == owner.id).one()
    db.refresh(wallet)
    assert wallet.balance == pytest.approx(-300.46)


@pytest.mark.parametrize("body", [{"amount": 10}, {"ownerId": "x", "amount": 0}])
def test_payout_requires_owner_and_positive_amount(client, admin_headers, body):
    response = client.post("/payouts", json=body, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Owner ID and positive amount are required"


def test_payout_unknown_owner(client, admin_headers):
    response = client.post("/payouts", json={"ownerId": "ghost", "amount": 10}, headers=admin_headers)
    assert response.status_code == 404


def test_owner_lists_only_own_payouts(client, db, admin_headers, owner_user):
    client.post("/payouts", json={"ownerId": owner_user.owner_id, "amount": 10}, headers=admin_headers)

    response = client.get("/payouts", headers=auth_headers(owner_user))

    assert response.status_code == 200
    assert len(response.json()) == 1


def test_preview_all_skips_owners_without_activity(client, db, admin_headers, prop):
    completed = add_booking(db, prop, datetime(2026, 3, 2), 1000)
    completed.status = "COMPLETED"
    add_booking(db, prop, datetime(2026, 3, 20), 400)
    add_expense(db, prop, datetime(2026, 3, 5), 50, paid_by="company")
    db.add(Owner(name="Idle Owner", preferred_currency="GHS"))
    wallet = db.query(OwnerWallet).filter(OwnerWallet.owner_id == prop.owner_id).one()
    wallet.balance = 200.0
    db.commit()
    statements_before = db.query(Statement).count()

    response = client.post(
        "/statements/preview-all",
        json={"periodStart": "2026-03-01T00:00:00Z", "periodEnd": "2026-03-31T23:59:59Z"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    previews = response.json()
    assert [p["owner"]["name"] for p in previews] == ["Esi Mensah"]
    preview = previews[0]
    # only the completed booking counts
    assert preview["bookingsCount"] == 1
    assert preview["expensesCount"] == 1
    assert preview["grossRevenue"] == pytest.approx(1000)
    # 1000 - 150 commission - 50 company-paid expense
    assert preview["netToOwner"] == pytest.approx(800)
    assert preview["openingBalance"] == 200.0
    assert preview["closingBalance"] == pytest.approx(1000)
    assert [line["type"] for line in preview["statementLines"]] == ["booking", "expense", "commission"]
    assert db.query(Statement).count() == statements_before


def test_preview_all_requires_admin(client, manager):
    response = client.post(
        "/statements/preview-all",
        json={"periodStart": "2026-03-01T00:00:00Z", "periodEnd": "2026-03-31T23:59:59Z"},
        headers=auth_headers(manager),
    )
    assert response.status_code == 403
