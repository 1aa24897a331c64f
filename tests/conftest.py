import os
import tempfile
from datetime import datetime

import pytest

# Point the app at a throwaway database and uploads dir before anything imports it
_TMP = tempfile.mkdtemp(prefix="hosthub-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["UPLOADS_DIR"] = os.path.join(_TMP, "public")
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
for _key in (
    "REDIS_URL",
    "SETTINGS_ENCRYPTION_KEY",
    "SMTP_HOST",
    "SMTP_USER",
    "SMTP_PASSWORD",
    "DEYWURO_USERNAME",
    "DEYWURO_PASSWORD",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_WHATSAPP_NUMBER",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
):
    os.environ.pop(_key, None)

from fastapi.testclient import TestClient  # noqa: E402

from app.database import Base, SessionLocal, engine  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Owner, OwnerWallet, Property, User  # noqa: E402
from app.security_utils import create_access_token, hash_password  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def uploads_dir():
    from app.config import UPLOADS_DIR

    return UPLOADS_DIR


def make_user(db, email, role, owner_id=None, name=None):
    user = User(
        email=email,
        name=name or email.split("@")[0].title(),
        password_hash=hash_password("password123"),
        role=role,
        owner_id=owner_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id, 'role': user.role})}"}


@pytest.fixture
def admin(db):
    return make_user(db, "admin@hosthub.com", "ADMIN", name="Ama Admin")


@pytest.fixture
def manager(db):
    return make_user(db, "manager@hosthub.com", "MANAGER", name="Kojo Manager")


@pytest.fixture
def owner(db):
    owner = Owner(
        name="Esi Mensah",
        email="esi@example.com",
        phone_number="0241234567",
        preferred_currency="GHS",
    )
    db.add(owner)
    db.flush()
    db.add(OwnerWallet(owner_id=owner.id, balance=0.0, commissions_payable=0.0))
    db.commit()
    db.refresh(owner)
    return owner


@pytest.fixture
def owner_user(db, owner):
    return make_user(db, "esi@example.com", "OWNER", owner_id=owner.id, name="Esi Mensah")


@pytest.fixture
def prop(db, owner, manager):
    prop = Property(
        owner_id=owner.id,
        manager_id=manager.id,
        name="Labone Villa",
        nickname="Labone",
        city="Accra",
        country="Ghana",
        currency="GHS",
        default_commission_rate=0.15,
    )
    db.add(prop)
    db.commit()
    db.refresh(prop)
    return prop


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def now():
    return datetime(2026, 3, 15, 12, 0, 0)
