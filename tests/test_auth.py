from datetime import timedelta

import pytest

from amc_manager.extensions import db
from amc_manager.models import AuditLog, User, utcnow
from amc_manager.tokens import create_access_token, hash_reset_token

from .conftest import PASSWORD


def _register(client, email="first@acme.com", password=PASSWORD, name="First"):
    return client.post("/api/auth/register", json={"name": name, "email": email, "password": password})


def test_first_registered_user_becomes_admin(client):
    r = _register(client)
    assert r.status_code == 201
    assert r.json["user"]["role"] == "admin"
    assert r.json["token"]

    r = _register(client, email="second@acme.com", name="Second")
    assert r.status_code == 201
    assert r.json["user"]["role"] == "viewer"


def test_register_normalizes_email_and_rejects_duplicates(client):
    assert _register(client, email="Mixed@Acme.com").json["user"]["email"] == "mixed@acme.com"

    r = _register(client, email="mixed@acme.com")
    assert r.status_code == 409
    assert r.json["details"]["email"]


def test_register_validation_errors(client):
    r = client.post("/api/auth/register", json={"name": "", "email": "nope", "password": "short"})
    assert r.status_code == 400
    assert r.json["error"] == "Validation failed"
    assert set(r.json["details"]) == {"name", "email", "password"}


def test_register_writes_audit_entry(app, client):
    _register(client)
    with app.app_context():
        entry = AuditLog.query.filter_by(entity_type="User", action="CREATE").one()
        assert entry.email_snapshot == "first@acme.com"
        assert "password_hash" not in (entry.after_data or "")


def test_login_returns_token_usable_for_me(client, make_user):
    make_user(email="jane@acme.com", name="Jane")

    r = client.post("/api/auth/login", json={"email": "JANE@acme.com", "password": PASSWORD})
    assert r.status_code == 200
    token = r.json["token"]

    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json["user"]["email"] == "jane@acme.com"
    assert r.json["user"]["last_login_at"] is not None


@pytest.mark.parametrize(
    "email,password",
    [("jane@acme.com", "wrong-password"), ("ghost@acme.com", PASSWORD)],
)
def test_login_bad_credentials(client, make_user, email, password):
    make_user(email="jane@acme.com")
    r = client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 401
    assert r.json["error"] == "Invalid email or password."


def test_login_inactive_account_is_403(client, make_user):
    make_user(email="gone@acme.com", is_active=False)
    r = client.post("/api/auth/login", json={"email": "gone@acme.com", "password": PASSWORD})
    assert r.status_code == 403


def test_token_of_deactivated_user_is_rejected(app, client, make_user, auth_headers):
    user_id = make_user(email="jane@acme.com")
    headers = auth_headers(user_id)
    assert client.get("/api/auth/me", headers=headers).status_code == 200

    with app.app_context():
        db.session.get(User, user_id).is_active = False
        db.session.commit()

    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_expired_token_is_rejected(app, client, make_user):
    user_id = make_user()
    with app.app_context():
        token = create_access_token(user_id, expires_delta=timedelta(seconds=-10))
    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


@pytest.fixture()
def sent_resets(monkeypatch):
    sent = []

    def _capture(user, token):
        sent.append((user.email, token))
        return True

    monkeypatch.setattr("amc_manager.blueprints.auth.routes.send_password_reset_email", _capture)
    return sent


def test_forgot_password_unknown_email_gives_same_answer(client, make_user, sent_resets):
    make_user(email="jane@acme.com")
    known = client.post("/api/auth/forgot-password", json={"email": "jane@acme.com"})
    unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@acme.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json == unknown.json
    assert [email for email, _ in sent_resets] == ["jane@acme.com"]


def test_forgot_then_reset_password(app, client, make_user, sent_resets):
    user_id = make_user(email="jane@acme.com")
    client.post("/api/auth/forgot-password", json={"email": "jane@acme.com"})
    _, token = sent_resets[0]

    with app.app_context():
        user = db.session.get(User, user_id)
        assert user.reset_token_hash == hash_reset_token(token)

    r = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
    assert r.status_code == 200

    r = client.post("/api/auth/login", json={"email": "jane@acme.com", "password": "brand-new-pass"})
    assert r.status_code == 200

    # Single use
    r = client.post("/api/auth/reset-password", json={"token": token, "password": "another-pass"})
    assert r.status_code == 400


def test_reset_password_with_expired_token(app, client, make_user, sent_resets):
    user_id = make_user(email="jane@acme.com")
    client.post("/api/auth/forgot-password", json={"email": "jane@acme.com"})
    _, token = sent_resets[0]

    with app.app_context():
        db.session.get(User, user_id).reset_token_expires_at = utcnow() - timedelta(minutes=1)
        db.session.commit()

    r = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
    assert r.status_code == 400
    assert r.json["details"]["token"]


def test_forgot_password_without_mail_server_still_succeeds(client, make_user):
    make_user(email="jane@acme.com")
    r = client.post("/api/auth/forgot-password", json={"email": "jane@acme.com"})
    assert r.status_code == 200


def test_change_password(client, make_user, auth_headers):
    headers = auth_headers(make_user(email="jane@acme.com", role="viewer"))

    r = client.post(
        "/api/auth/change-password",
        json={"current_password": "wrong", "new_password": "brand-new-pass"},
        headers=headers,
    )
    assert r.status_code == 400
    assert "current_password" in r.json["details"]

    r = client.post(
        "/api/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "brand-new-pass"},
        headers=headers,
    )
    assert r.status_code == 200

    # The old token is revoked, the returned one works
    assert client.get("/api/auth/me", headers=headers).status_code == 401
    fresh = {"Authorization": f"Bearer {r.json['token']}"}
    assert client.get("/api/auth/me", headers=fresh).status_code == 200

    r = client.post("/api/auth/login", json={"email": "jane@acme.com", "password": "brand-new-pass"})
    assert r.status_code == 200


def test_reset_password_revokes_existing_tokens(client, make_user, auth_headers, sent_resets):
    headers = auth_headers(make_user(email="jane@acme.com"))
    assert client.get("/api/auth/me", headers=headers).status_code == 200

    client.post("/api/auth/forgot-password", json={"email": "jane@acme.com"})
    _, token = sent_resets[0]
    r = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
    assert r.status_code == 200

    assert client.get("/api/auth/me", headers=headers).status_code == 401

    r = client.post("/api/auth/login", json={"email": "jane@acme.com", "password": "brand-new-pass"})
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {r.json['token']}"}).status_code == 200
