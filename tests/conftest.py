import os

# Configure the environment before any arcana module reads it
os.environ.setdefault("PYTEST_RUNNING", "1")
os.environ.setdefault("JWT_SECRET", "test-secret-for-arcana-session-tokens")
os.environ["DATABASE_PROVIDER"] = "sql"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import MetaData, inspect

from arcana.api.auth import build_user_record
from arcana.api.deps import get_database
from arcana.api.main import app
from arcana.db.database import DatabaseService, engine
from arcana.db.models import Base
from arcana.db.providers import SqlProvider
from arcana.services.mailer import get_mailer

ADMIN_EMAIL = "admin@example.com"
USER_EMAIL = "reader@example.com"
PASSWORD = "Secret123!"


@pytest.fixture(autouse=True)
def _auth_env(monkeypatch):
    monkeypatch.delenv("INTERNAL_API_KEY", raising=False)
    monkeypatch.delenv("ADMIN_EMAILS", raising=False)
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
    monkeypatch.delenv("APP_ENV", raising=False)
    yield


@pytest.fixture(scope="session")
def sql_provider(tmp_path_factory):
    return SqlProvider(engine, upload_dir=str(tmp_path_factory.mktemp("uploads")))


@pytest.fixture
def database(sql_provider):
    """Facade bound to the in-memory SQLite provider, emptied before each test."""
    canonical = set(Base.metadata.tables)
    existing = inspect(engine).get_table_names()
    with engine.begin() as conn:
        for name in existing:
            if name in canonical:
                conn.execute(Base.metadata.tables[name].delete())
    dynamic = [name for name in existing if name not in canonical]
    if dynamic:
        meta = MetaData()
        meta.reflect(bind=engine, only=dynamic)
        meta.drop_all(bind=engine)
    sql_provider.reset_schema_cache()
    return DatabaseService("sql", providers={"sql": sql_provider})


class FakeMailer:
    """Records mailer calls instead of sending anything."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def _record(self, kind, to, **data):
        self.sent.append({"kind": kind, "to": to, **data})
        if self.fail:
            return {"success": False, "error": "smtp down"}
        return {"success": True, "message_id": f"msg-{len(self.sent)}"}

    async def send_welcome_email(self, to, user_display_name=None):
        return await self._record("welcome", to, name=user_display_name)

    async def send_password_reset_email(self, to, reset_code, user_display_name=None):
        return await self._record("password_reset", to, code=reset_code, name=user_display_name)

    async def send_email_verification(self, to, verification_code, user_display_name=None):
        return await self._record("verification", to, code=verification_code)

    async def send_order_confirmation_email(self, to, order_details):
        return await self._record("order_confirmation", to, details=dict(order_details))


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def client(database, mailer):
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(database):
    def _create(email=USER_EMAIL, password=PASSWORD, name="Reader", role="user"):
        record = build_user_record(name, email, password)
        record["role"] = role
        return database.create(record, "users")
    return _create


def login(client, email, password=PASSWORD, remember_me=False):
    resp = client.post("/api/auth/login", json={"email": email, "password": password, "remember_me": remember_me})
    assert resp.status_code == 200
    assert resp.json().get("success") is True, resp.json()
    return resp


@pytest.fixture
def admin_client(client, make_user):
    make_user(email=ADMIN_EMAIL, name="Admin", role="admin")
    login(client, ADMIN_EMAIL)
    return client


@pytest.fixture
def user_client(client, make_user):
    make_user()
    login(client, USER_EMAIL)
    return client
