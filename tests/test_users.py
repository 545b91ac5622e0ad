from amc_manager.models import AuditLog

from .conftest import PASSWORD


def _new_user(**overrides):
    data = {"name": "Nikos", "email": "nikos@acme.com", "password": PASSWORD, "role": "manager"}
    data.update(overrides)
    return data


def test_users_are_admin_only(client, manager_headers, viewer_headers):
    assert client.get("/api/users", headers=manager_headers).status_code == 403
    assert client.get("/api/users", headers=viewer_headers).status_code == 403
    assert client.post("/api/users", json=_new_user(), headers=manager_headers).status_code == 403


def test_list_users(client, admin_headers, make_user):
    make_user(email="zoe@acme.com", role="manager", name="Zoe")
    make_user(email="bob@acme.com", role="viewer", name="Bob", is_active=False)

    r = client.get("/api/users", headers=admin_headers)
    assert r.status_code == 200
    assert [u["email"] for u in r.json["items"]] == ["admin@acme.com", "bob@acme.com", "zoe@acme.com"]
    assert "password_hash" not in r.json["items"][0]

    r = client.get("/api/users?role=manager", headers=admin_headers)
    assert [u["email"] for u in r.json["items"]] == ["zoe@acme.com"]

    r = client.get("/api/users?is_active=false", headers=admin_headers)
    assert [u["email"] for u in r.json["items"]] == ["bob@acme.com"]

    r = client.get("/api/users?search=ZO", headers=admin_headers)
    assert r.json["pagination"]["total"] == 1

    assert client.get("/api/users?role=owner", headers=admin_headers).status_code == 400


def test_create_user_and_login(client, admin_headers):
    r = client.post("/api/users", json=_new_user(email="Nikos@Acme.com"), headers=admin_headers)
    assert r.status_code == 201
    assert r.json["user"]["email"] == "nikos@acme.com"
    assert r.json["user"]["role"] == "manager"
    assert r.json["user"]["is_active"] is True

    r = client.post("/api/auth/login", json={"email": "nikos@acme.com", "password": PASSWORD})
    assert r.status_code == 200


def test_create_user_validation(client, admin_headers):
    r = client.post("/api/users", json=_new_user(role="owner", password="short"), headers=admin_headers)
    assert r.status_code == 400
    assert set(r.json["details"]) == {"role", "password"}

    r = client.post("/api/users", json=_new_user(is_active="yes"), headers=admin_headers)
    assert r.status_code == 400
    assert "is_active" in r.json["details"]


def test_create_duplicate_email_is_409(client, admin_headers):
    r = client.post("/api/users", json=_new_user(email="admin@acme.com"), headers=admin_headers)
    assert r.status_code == 409
    assert r.json["details"]["email"]


def test_update_user(client, admin_headers, make_user):
    user_id = make_user(email="zoe@acme.com", name="Zoe")
    r = client.put(
        f"/api/users/{user_id}",
        json={"name": "Zoe K.", "email": "zoe@acme.com", "role": "manager", "password": "brand-new-pass"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json["user"]["name"] == "Zoe K."
    assert r.json["user"]["role"] == "manager"

    r = client.post("/api/auth/login", json={"email": "zoe@acme.com", "password": "brand-new-pass"})
    assert r.status_code == 200


def test_update_to_taken_email_is_409(client, admin_headers, make_user):
    user_id = make_user(email="zoe@acme.com")
    r = client.put(
        f"/api/users/{user_id}",
        json={"name": "Zoe", "email": "admin@acme.com", "role": "viewer"},
        headers=admin_headers,
    )
    assert r.status_code == 409


def test_admin_cannot_demote_or_deactivate_self(app, client, admin_headers):
    me = client.get("/api/auth/me", headers=admin_headers).json["user"]

    r = client.put(
        f"/api/users/{me['id']}",
        json={"name": "Admin", "email": "admin@acme.com", "role": "viewer"},
        headers=admin_headers,
    )
    assert r.status_code == 400
    assert "role" in r.json["details"]

    r = client.put(
        f"/api/users/{me['id']}",
        json={"name": "Admin", "email": "admin@acme.com", "role": "admin", "is_active": False},
        headers=admin_headers,
    )
    assert r.status_code == 400

    assert client.delete(f"/api/users/{me['id']}", headers=admin_headers).status_code == 400


def test_delete_deactivates_user(app, client, admin_headers, make_user, auth_headers):
    user_id = make_user(email="zoe@acme.com", role="manager")
    zoe_headers = auth_headers(user_id)

    r = client.delete(f"/api/users/{user_id}", headers=admin_headers)
    assert r.status_code == 204

    r = client.get(f"/api/users/{user_id}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json["user"]["is_active"] is False

    r = client.post("/api/auth/login", json={"email": "zoe@acme.com", "password": PASSWORD})
    assert r.status_code == 403
    assert client.get("/api/contracts", headers=zoe_headers).status_code == 401

    with app.app_context():
        assert AuditLog.query.filter_by(entity_type="User", action="DEACTIVATE").count() == 1


def test_missing_user_is_404(client, admin_headers):
    r = client.get("/api/users/999", headers=admin_headers)
    assert r.status_code == 404
    assert r.json["details"] == "User 999 not found."


def test_admin_password_reset_revokes_user_tokens(client, admin_headers, make_user, auth_headers):
    user_id = make_user(email="zoe@acme.com", role="manager")
    zoe_headers = auth_headers(user_id)

    r = client.put(
        f"/api/users/{user_id}",
        json={"name": "Zoe", "email": "zoe@acme.com", "role": "manager", "password": "brand-new-pass"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert client.get("/api/auth/me", headers=zoe_headers).status_code == 401

    # Editing without a password leaves tokens alone
    other_id = make_user(email="bob@acme.com")
    bob_headers = auth_headers(other_id)
    client.put(
        f"/api/users/{other_id}",
        json={"name": "Bob B.", "email": "bob@acme.com", "role": "viewer"},
        headers=admin_headers,
    )
    assert client.get("/api/auth/me", headers=bob_headers).status_code == 200


def test_email_race_lost_at_the_database_is_409(client, admin_headers, make_user, monkeypatch):
    user_id = make_user(email="zoe@acme.com")
    # Another request registers the address between the check and the write
    monkeypatch.setattr("amc_manager.blueprints.users.routes._email_taken", lambda *a, **kw: False)

    r = client.post("/api/users", json=_new_user(email="zoe@acme.com"), headers=admin_headers)
    assert r.status_code == 409
    assert r.json["details"]["email"]

    r = client.put(
        f"/api/users/{user_id}",
        json={"name": "Zoe", "email": "admin@acme.com", "role": "viewer"},
        headers=admin_headers,
    )
    assert r.status_code == 409

    r = client.get("/api/users", headers=admin_headers)
    assert r.json["pagination"]["total"] == 2
