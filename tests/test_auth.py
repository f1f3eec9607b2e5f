"""Tests for admin registration, login, profile and the auth decorators."""
from __future__ import annotations

from werkzeug.security import generate_password_hash

from salonbook.auth import build_token
from salonbook.extensions import db
from salonbook.models import Admin


def _register(client, headers=None, **overrides):
    payload = {"username": "manager", "password": "manager123", "name": "Front Desk", **overrides}
    return client.post("/auth/register", json=payload, headers=headers or {})


def test_first_admin_registers_without_token(client) -> None:
    response = _register(client)

    assert response.status_code == 201
    assert response.json["token"]
    assert response.json["admin"]["username"] == "manager"
    assert response.json["admin"]["role"] == "admin"


def test_later_admins_need_a_token(client, admin_headers) -> None:
    anonymous = _register(client)
    assert anonymous.status_code == 401

    signed_in = _register(client, headers=admin_headers)
    assert signed_in.status_code == 201


def test_register_rejects_duplicate_username(client, admin_headers) -> None:
    response = _register(client, headers=admin_headers, username="owner")

    assert response.status_code == 400
    assert response.json["error"] == "conflict"


def test_register_validates_payload(client) -> None:
    short_password = _register(client, password="abc")
    bad_email = _register(client, email="not-an-email")

    assert short_password.status_code == 400
    assert short_password.json["message"] == "Password must be at least 6 characters"
    assert bad_email.status_code == 400


def test_login_success(client, admin_headers) -> None:
    response = client.post("/auth/login", json={"username": "owner", "password": "secret123"})

    assert response.status_code == 200
    assert response.json["admin"]["last_login_at"] is not None

    verify = client.get("/auth/verify", headers={"Authorization": f"Bearer {response.json['token']}"})
    assert verify.status_code == 200
    assert verify.json["valid"] is True


def test_login_wrong_password(client, admin_headers) -> None:
    response = client.post("/auth/login", json={"username": "owner", "password": "wrong-pass"})

    assert response.status_code == 401
    assert response.json["error"] == "unauthorized"


def test_login_requires_credentials(client) -> None:
    response = client.post("/auth/login", json={"username": "owner"})

    assert response.status_code == 400


def test_profile_read_and_update(client, admin_headers) -> None:
    profile = client.get("/auth/profile", headers=admin_headers)
    assert profile.json["admin"]["name"] == "Salon Owner"

    updated = client.put("/auth/profile", json={"name": "Owner", "email": "Owner@Salon.in"}, headers=admin_headers)

    assert updated.status_code == 200
    assert updated.json["admin"]["name"] == "Owner"
    assert updated.json["admin"]["email"] == "owner@salon.in"


def test_change_password(client, admin_headers) -> None:
    wrong = client.put(
        "/auth/change-password",
        json={"current_password": "nope", "new_password": "newsecret"},
        headers=admin_headers,
    )
    assert wrong.status_code == 400
    assert wrong.json["error"] == "invalid_password"

    changed = client.put(
        "/auth/change-password",
        json={"current_password": "secret123", "new_password": "newsecret"},
        headers=admin_headers,
    )
    assert changed.status_code == 200

    assert client.post("/auth/login", json={"username": "owner", "password": "newsecret"}).status_code == 200


def test_tampered_token_is_rejected(client, admin_headers) -> None:
    headers = {"Authorization": admin_headers["Authorization"] + "x"}

    response = client.get("/auth/verify", headers=headers)

    assert response.status_code == 401


def test_missing_bearer_prefix_is_rejected(client, admin_headers) -> None:
    token = admin_headers["Authorization"].split(" ", 1)[1]

    response = client.get("/auth/verify", headers={"Authorization": token})

    assert response.status_code == 401


def test_inactive_admin_token_is_rejected(client, admin_headers, app) -> None:
    with app.app_context():
        admin = Admin.query.filter_by(username="owner").one()
        admin.is_active = False
        db.session.commit()

    response = client.get("/auth/profile", headers=admin_headers)

    assert response.status_code == 401


def test_non_admin_role_is_forbidden_from_admin_routes(client, app) -> None:
    with app.app_context():
        staff = Admin(
            username="desk",
            name="Reception",
            role="staff",
            password_hash=generate_password_hash("desk1234"),
        )
        db.session.add(staff)
        db.session.commit()
        headers = {"Authorization": f"Bearer {build_token(staff)}"}

    readable = client.get("/customers", headers=headers)
    forbidden = client.post("/services", json={"name": "Pedicure"}, headers=headers)

    assert readable.status_code == 200
    assert forbidden.status_code == 403
    assert forbidden.json["error"] == "forbidden"
