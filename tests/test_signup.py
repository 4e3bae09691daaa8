# tests/test_signup.py
from account_service import crud, mailer
from account_service.db import SessionLocal
from account_service.main import (
    MAX_VERIFICATION_ATTEMPTS,
    MSG_CODE_EXPIRED,
    MSG_CODE_MISMATCH,
    MSG_DUPLICATE_EMAIL,
    MSG_INVALID_INPUT,
    MSG_PASSWORD_CONFIRM,
    MSG_PASSWORD_FORMAT,
    MSG_SEND_FAILED,
    MSG_SEND_OK,
    MSG_SIGNUP_OK,
)
from account_service.utils import verify_password

from conftest import TEST_CODE, TEST_EMAIL, TEST_PASSWORD


def _signup_payload(**overrides):
    payload = {
        "email": TEST_EMAIL,
        "verifyNumberInput": TEST_CODE,
        "password": TEST_PASSWORD,
        "passwordConfirm": TEST_PASSWORD,
    }
    payload.update(overrides)
    return payload


def _request_code(client, email=TEST_EMAIL):
    r = client.post("/signup/verification-code", json={"email": email})
    assert r.status_code == 200, r.text
    assert r.json() == {"message": MSG_SEND_OK}


def test_send_code_stores_and_delivers_code(client, outbox):
    _request_code(client)
    assert outbox == [(TEST_EMAIL, TEST_CODE)]

    db = SessionLocal()
    try:
        entry = crud.get_verification_code(db, TEST_EMAIL)
        assert entry is not None and entry.code == TEST_CODE
    finally:
        db.close()


def test_send_code_requires_email(client, outbox):
    r = client.post("/signup/verification-code", json={})
    assert r.status_code == 400
    assert r.json() == {"message": MSG_INVALID_INPUT}
    assert outbox == []


def test_send_code_reports_delivery_failure(client, monkeypatch):
    async def failing_send(email, code):
        return False

    monkeypatch.setattr(mailer, "send_verification_email", failing_send)
    r = client.post("/signup/verification-code", json={"email": TEST_EMAIL})
    assert r.status_code == 400
    assert r.json() == {"message": MSG_SEND_FAILED}

    # an undelivered code cannot be used
    db = SessionLocal()
    try:
        assert crud.get_verification_code(db, TEST_EMAIL) is None
    finally:
        db.close()


def test_signup_succeeds_with_matching_code(client, outbox):
    _request_code(client)
    r = client.post("/signup", json=_signup_payload())
    assert r.status_code == 201, r.text
    assert r.json() == {"message": MSG_SIGNUP_OK}

    db = SessionLocal()
    try:
        user = crud.get_user_by_email(db, TEST_EMAIL)
        assert user is not None
        assert user.point == 0
        assert user.hashed_password != TEST_PASSWORD
        assert verify_password(TEST_PASSWORD, user.hashed_password)
        # the code is consumed
        assert crud.get_verification_code(db, TEST_EMAIL) is None
    finally:
        db.close()


def test_signup_accepts_numeric_code(client, outbox):
    _request_code(client)
    r = client.post("/signup", json=_signup_payload(verifyNumberInput=int(TEST_CODE)))
    assert r.status_code == 201, r.text


def test_signup_rejects_missing_fields(client, outbox):
    _request_code(client)
    for field in ("email", "verifyNumberInput", "password", "passwordConfirm"):
        payload = _signup_payload()
        del payload[field]
        r = client.post("/signup", json=payload)
        assert r.status_code == 400, field
        assert r.json() == {"message": MSG_INVALID_INPUT}


def test_signup_rejects_malformed_body(client):
    r = client.post("/signup", json={"email": ["a@b.com"]})
    assert r.status_code == 400
    assert r.json() == {"message": MSG_INVALID_INPUT}


def test_signup_rejects_wrong_code(client, outbox):
    _request_code(client)
    r = client.post("/signup", json=_signup_payload(verifyNumberInput="000000"))
    assert r.status_code == 412
    assert r.json() == {"message": MSG_CODE_MISMATCH}


def test_signup_rejects_code_never_requested(client):
    r = client.post("/signup", json=_signup_payload())
    assert r.status_code == 412
    assert r.json() == {"message": MSG_CODE_MISMATCH}


def test_signup_rejects_code_issued_for_another_email(client, outbox):
    _request_code(client, email="other@b.com")
    r = client.post("/signup", json=_signup_payload())
    assert r.status_code == 412


def test_signup_rejects_expired_code(client, outbox, monkeypatch):
    monkeypatch.setattr(mailer, "VERIFICATION_CODE_EXPIRATION_MINUTES", -1)
    _request_code(client)
    r = client.post("/signup", json=_signup_payload())
    assert r.status_code == 412
    assert r.json() == {"message": MSG_CODE_EXPIRED}

    db = SessionLocal()
    try:
        assert crud.get_verification_code(db, TEST_EMAIL) is None
    finally:
        db.close()


def test_signup_rejects_duplicate_email(client, outbox, make_user):
    # the account appears between the code request and the signup
    _request_code(client)
    make_user()
    r = client.post("/signup", json=_signup_payload())
    assert r.status_code == 412
    assert r.json() == {"message": MSG_DUPLICATE_EMAIL}


def test_signup_rejects_weak_password(client, outbox):
    _request_code(client)
    r = client.post("/signup", json=_signup_payload(password="abc", passwordConfirm="abc"))
    assert r.status_code == 412
    assert r.json() == {"message": MSG_PASSWORD_FORMAT}


def test_signup_rejects_confirmation_mismatch(client, outbox):
    _request_code(client)
    r = client.post("/signup", json=_signup_payload(passwordConfirm="Abc1234"))
    assert r.status_code == 412
    assert r.json() == {"message": MSG_PASSWORD_CONFIRM}


def test_email_is_case_sensitive(client, outbox, make_user):
    make_user(email="A@b.com")
    _request_code(client)
    r = client.post("/signup", json=_signup_payload())
    assert r.status_code == 201, r.text


def test_send_code_refuses_registered_email(client, outbox, make_user):
    make_user()
    r = client.post("/signup/verification-code", json={"email": TEST_EMAIL})
    assert r.status_code == 412
    assert r.json() == {"message": MSG_DUPLICATE_EMAIL}
    assert outbox == []


def test_code_is_discarded_after_too_many_wrong_guesses(client, outbox):
    _request_code(client)
    for _ in range(MAX_VERIFICATION_ATTEMPTS - 1):
        r = client.post("/signup", json=_signup_payload(verifyNumberInput="000000"))
        assert r.status_code == 412
        assert r.json() == {"message": MSG_CODE_MISMATCH}

    r = client.post("/signup", json=_signup_payload(verifyNumberInput="000000"))
    assert r.status_code == 412
    assert r.json() == {"message": MSG_CODE_EXPIRED}

    # the right code no longer works
    r = client.post("/signup", json=_signup_payload())
    assert r.status_code == 412

    db = SessionLocal()
    try:
        assert crud.get_verification_code(db, TEST_EMAIL) is None
        assert crud.get_user_by_email(db, TEST_EMAIL) is None
    finally:
        db.close()


def test_new_code_resets_wrong_guess_count(client, outbox):
    _request_code(client)
    for _ in range(MAX_VERIFICATION_ATTEMPTS - 1):
        client.post("/signup", json=_signup_payload(verifyNumberInput="000000"))

    _request_code(client)
    r = client.post("/signup", json=_signup_payload(verifyNumberInput="000000"))
    assert r.json() == {"message": MSG_CODE_MISMATCH}
    r = client.post("/signup", json=_signup_payload())
    assert r.status_code == 201, r.text


def test_signup_rejects_password_longer_than_bcrypt_limit(client, outbox):
    _request_code(client)
    long_password = "Aa1" + "x" * 70
    r = client.post("/signup", json=_signup_payload(password=long_password, passwordConfirm=long_password))
    assert r.status_code == 412
    assert r.json() == {"message": MSG_PASSWORD_FORMAT}
