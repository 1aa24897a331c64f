import pytest

from app.models import User
from app.security_utils import verify_password
from app.services.seed_service import ensure_super_admin
from tests.conftest import auth_headers


def test_seeded_super_admin_can_log_in_and_create_staff(client, db):
    user, created = ensure_super_admin(db, "Root@HostHub.com", "rootpass123")
    assert created is True
    assert user.role == "SUPER_ADMIN"

    token = client.post("/auth/login", json={"email": "root@hosthub.com", "password": "rootpass123"}).json()[
        "accessToken"
    ]
    response = client.post(
        "/users",
        json={"email": "Kojo@HostHub.com", "password": "managerpass", "name": "Kojo", "role": "MANAGER"},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "kojo@hosthub.com"
    assert body["role"] == "MANAGER"
    assert "passwordHash" not in body
    stored = db.query(User).filter(User.email == "kojo@hosthub.com").one()
    assert verify_password("managerpass", stored.password_hash)


def test_seed_is_idempotent(db):
    first, _ = ensure_super_admin(db, "root@hosthub.com", "rootpass123")
    second, created = ensure_super_admin(db, "root@hosthub.com", "differentpass")

    assert created is False
    assert second.id == first.id
    assert verify_password("rootpass123", second.password_hash)


@pytest.mark.parametrize("email,password", [("", "rootpass123"), ("root@hosthub.com", "short")])
def test_seed_rejects_bad_input(db, email, password):
    with pytest.raises(ValueError):
        ensure_super_admin(db, email, password)


def test_create_user_requires_fields(client, admin_headers):
    response = client.post("/users", json={"email": "x@hosthub.com", "password": "password123"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Email, password, and role are required"


def test_create_user_duplicate_email(client, admin_headers, manager):
    response = client.post(
        "/users",
        json={"email": "MANAGER@hosthub.com", "password": "password123", "role": "FINANCE"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "User with this email already exists"


def test_create_user_rejects_unknown_role(client, admin_headers):
    response = client.post(
        "/users",
        json={"email": "x@hosthub.com", "password": "password123", "role": "JANITOR"},
        headers=admin_headers,
    )
    assert response.status_code == 422


def test_admin_cannot_create_super_admin(client, admin_headers):
    response = client.post(
        "/users",
        json={"email": "x@hosthub.com", "password": "password123", "role": "SUPER_ADMIN"},
        headers=admin_headers,
    )
    assert response.status_code == 403


def test_list_users_filters_by_role(client, admin_headers, admin, manager):
    listed = client.get("/users?role=MANAGER", headers=admin_headers).json()

    assert [u["id"] for u in listed] == [manager.id]


def test_update_user(client, db, admin_headers, manager):
    response = client.patch(
        f"/users/{manager.id}",
        json={"role": "GENERAL_MANAGER", "password": "newpassword", "name": ""},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["role"] == "GENERAL_MANAGER"
    assert response.json()["name"] is None
    db.refresh(manager)
    assert verify_password("newpassword", manager.password_hash)


def test_update_user_email_taken(client, admin_headers, admin, manager):
    response = client.patch(f"/users/{manager.id}", json={"email": "admin@hosthub.com"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Email is already taken"


def test_deactivated_user_cannot_log_in(client, admin_headers, admin, manager):
    assert client.delete(f"/users/{admin.id}", headers=admin_headers).status_code == 400
    assert client.delete(f"/users/{manager.id}", headers=admin_headers).json() == {"success": True}

    login = client.post("/auth/login", json={"email": "manager@hosthub.com", "password": "password123"})
    assert login.status_code == 401


def test_users_router_requires_admin(client, manager):
    assert client.get("/users", headers=auth_headers(manager)).status_code == 403
    assert client.get("/users/unknown", headers=auth_headers(manager)).status_code == 403


def test_unknown_user_is_404(client, admin_headers):
    assert client.get("/users/unknown", headers=admin_headers).status_code == 404
