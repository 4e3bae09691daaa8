# tests/conftest.py
import os

# Configuration must be in place before the service modules are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "testing_secret"
os.environ["MAIL_API_URL"] = "http://mail-relay.test/send"

import pytest
from fastapi.testclient import TestClient

from account_service import crud, mailer
from account_service.db import Base, SessionLocal, engine
from account_service.main import app
from account_service.utils import get_password_hash

TEST_EMAIL = "a@b.com"
TEST_PASSWORD = "Abc123"
TEST_CODE = "482913"


@pytest.fixture(autouse=True)
def reset_db():
    """Every test starts from empty tables."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def outbox(monkeypatch):
    """
    Replaces the mail relay: codes are fixed and every sent message is recorded
    as (email, code).
    """
    sent = []

    async def fake_send(email, code):
        sent.append((email, code))
        return True

    monkeypatch.setattr(mailer, "generate_verification_code", lambda length=6: TEST_CODE)
    monkeypatch.setattr(mailer, "send_verification_email", fake_send)
    return sent


@pytest.fixture
def make_user():
    """Creates a user directly in storage and returns its id."""
    def _make_user(email=TEST_EMAIL, password=TEST_PASSWORD):
        db = SessionLocal()
        try:
            return crud.create_user(db, email, get_password_hash(password)).id
        finally:
            db.close()
    return _make_user


@pytest.fixture
def user_id(make_user):
    return make_user()


@pytest.fixture
def logged_in_client(client, user_id):
    r = client.post("/login", json={"email": TEST_EMAIL, "password": TEST_PASSWORD})
    assert r.status_code == 200, r.text
    return client


def session_cookie(client):
    """The raw "Bearer <token>" value currently held by the client."""
    value = client.cookies.get("authorization")
    return value.strip('"') if value else value
