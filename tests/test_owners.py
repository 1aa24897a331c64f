import pytest

from app.models import Owner, OwnerTransaction, OwnerWallet, User
from tests.conftest import auth_headers, make_user


def add_transaction(db, owner, amount, type_="MANUAL_ADJUSTMENT"):
    db.add(OwnerTransaction(owner_id=owner.id, type=type_, amount=amount, currency="GHS"))
    db.commit()


def test_create_owner_with_login(client, db, admin_headers):
    response = client.post(
        "/owners",
        json={
            "name": "Yaw Boateng",
            "email": "yaw@example.com",
            "phoneNumber": "+233 24 111 2222",
            "createUserAccount": True,
            "password": "s3cretpass",
        },
        headers=admin_headers,
    )

    assert response.status_code == 201
    owner_id = response.json()["id"]
    user = db.query(User).filter(User.email == "yaw@example.com").one()
    assert user.role == "OWNER"
    assert user.owner_id == owner_id
    assert db.query(OwnerWallet).filter(OwnerWallet.owner_id == owner_id).count() == 1


def test_create_owner_login_requires_password(client, admin_headers):
    response = client.post(
        "/owners",
        json={"name": "Yaw", "email": "yaw@example.com", "createUserAccount": True},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_duplicate_login_email_rejected(client, admin_headers, admin):
    response = client.post(
        "/owners",
        json={
            "name": "Clash",
            "email": admin.email,
            "createUserAccount": True,
            "password": "longenough",
        },
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "User with this email already exists"


def test_owner_with_properties_cannot_be_deleted(client, admin_headers, prop):
    response = client.delete(f"/owners/{prop.owner_id}", headers=admin_headers)
    assert response.status_code == 400


def test_owner_sees_only_own_wallet(client, db, owner_user):
    other = Owner(name="Someone Else")
    db.add(other)
    db.commit()

    assert client.get(f"/owners/{owner_user.owner_id}/wallet", headers=auth_headers(owner_user)).status_code == 200
    assert client.get(f"/owners/{other.id}/wallet", headers=auth_headers(owner_user)).status_code == 403


def test_manager_cannot_view_wallets(client, manager, owner):
    assert client.get(f"/owners/{owner.id}/wallet", headers=auth_headers(manager)).status_code == 403


def test_wallet_read_corrects_drifted_balance(client, db, admin_headers, owner):
    add_transaction(db, owner, 500)
    add_transaction(db, owner, -200)
    wallet = db.query(OwnerWallet).filter(OwnerWallet.owner_id == owner.id).one()
    wallet.balance = 999
    db.commit()

    data = client.get(f"/owners/{owner.id}/wallet", headers=admin_headers).json()

    assert data["balance"] == pytest.approx(300)
    assert data["calculatedBalance"] == pytest.approx(300)
    assert len(data["transactions"]) == 2


def test_create_transaction_recomputes_balance(client, db, admin_headers, owner):
    add_transaction(db, owner, 100)

    response = client.post(
        f"/owners/{owner.id}/transactions",
        json={"type": "EXPENSE", "amount": -40, "notes": "Plumber"},
        headers=admin_headers,
    )

    assert response.status_code == 201
    db.expire_all()
    wallet = db.query(OwnerWallet).filter(OwnerWallet.owner_id == owner.id).one()
    assert wallet.balance == pytest.approx(60)


def test_pay_balance_requires_negative_balance(client, db, admin_headers, owner):
    response = client.post(f"/owners/{owner.id}/wallet/pay-balance", json={"amount": 50}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Owner does not have an outstanding balance"


def test_pay_balance_caps_at_outstanding(client, db, admin_headers, owner):
    add_transaction(db, owner, -250)
    client.get(f"/owners/{owner.id}/wallet", headers=admin_headers)

    too_much = client.post(f"/owners/{owner.id}/wallet/pay-balance", json={"amount": 300}, headers=admin_headers)
    assert too_much.status_code == 400
    assert too_much.json()["detail"] == "Amount exceeds outstanding balance. Maximum: 250.00"

    response = client.post(
        f"/owners/{owner.id}/wallet/pay-balance",
        json={"amount": 100, "reference": "MOMO-77"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["wallet"]["balance"] == pytest.approx(-150)
    assert data["transaction"]["notes"] == "Balance payment received - Ref: MOMO-77"
    assert data["message"] == "Balance payment recorded successfully"


def test_pay_commission(client, db, admin_headers, owner):
    wallet = db.query(OwnerWallet).filter(OwnerWallet.owner_id == owner.id).one()
    wallet.commissions_payable = 120
    db.commit()

    too_much = client.post(
        f"/owners/{owner.id}/wallet/pay-commission", json={"amount": 200}, headers=admin_headers
    )
    assert too_much.status_code == 400
    assert "Available: 120.00, Requested: 200.00" in too_much.json()["detail"]

    data = client.post(
        f"/owners/{owner.id}/wallet/pay-commission", json={"amount": 20}, headers=admin_headers
    ).json()
    assert data["wallet"]["commissionsPayable"] == pytest.approx(100)
    assert data["transaction"]["type"] == "COMMISSION_PAYMENT"
    assert data["transaction"]["amount"] == pytest.approx(-20)
    assert data["transaction"]["notes"] == "Commission payment of 20.00 GHS"


def test_pay_commission_compares_rounded_amounts(client, db, admin_headers, owner):
    wallet = db.query(OwnerWallet).filter(OwnerWallet.owner_id == owner.id).one()
    wallet.commissions_payable = 100 - 1e-9
    db.commit()

    response = client.post(
        f"/owners/{owner.id}/wallet/pay-commission", json={"amount": 100.004}, headers=admin_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["wallet"]["commissionsPayable"] == 0
    assert data["transaction"]["amount"] == -100.0


def test_pay_balance_stores_rounded_amount(client, db, admin_headers, owner):
    add_transaction(db, owner, -50)
    client.get(f"/owners/{owner.id}/wallet", headers=admin_headers)

    data = client.post(
        f"/owners/{owner.id}/wallet/pay-balance", json={"amount": 10.126}, headers=admin_headers
    ).json()

    assert data["transaction"]["amount"] == 10.13
    assert data["wallet"]["balance"] == -39.87


@pytest.mark.parametrize("amount", [0, -5])
def test_wallet_payments_reject_non_positive_amounts(client, admin_headers, owner, amount):
    response = client.post(
        f"/owners/{owner.id}/wallet/pay-commission", json={"amount": amount}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid amount"


def test_owner_role_cannot_record_payments(client, db, owner_user):
    response = client.post(
        f"/owners/{owner_user.owner_id}/wallet/pay-commission",
        json={"amount": 10},
        headers=auth_headers(owner_user),
    )
    assert response.status_code == 403


def test_unknown_owner_is_404(client, admin_headers):
    assert client.get("/owners/nope", headers=admin_headers).status_code == 404


def test_non_admin_roles_cannot_list_owners(client, db):
    cleaner = make_user(db, "cleaner@hosthub.com", "MANAGER")
    assert client.get("/owners", headers=auth_headers(cleaner)).status_code == 403
