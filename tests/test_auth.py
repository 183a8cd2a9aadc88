"""
Auth API tests — register, login, bearer tokens, role checks.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app.models import db
from app.models.user import User

DEFAULT_PASSWORD = "Passw0rd!123"


def _register(client, **overrides):
    payload = {
        "email": "new.user@example.com",
        "password": "s3cure-pass",
        "first_name": "New",
        "last_name": "User",
    }
    payload.update(overrides)
    return client.post("/api/v1/auth/register", json=payload)


class TestRegister:

    def test_register_returns_token(self, client):
        res = _register(client, email="New.User@Example.com", role="pm")

        assert res.status_code == 201
        body = res.get_json()
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == 28800
        assert body["user"]["email"] == "new.user@example.com"
        assert body["user"]["role"] == "pm"
        assert "password_hash" not in body["user"]

        me = client.get("/api/v1/auth/me",
                        headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.get_json()["user"]["full_name"] == "New User"

    def test_default_role(self, client):
        assert _register(client).get_json()["user"]["role"] == "team_member"

    def test_admin_cannot_be_self_assigned(self, client):
        res = _register(client, role="admin")
        assert res.status_code == 422
        assert User.query.count() == 0

    def test_duplicate_email(self, client, member):
        res = _register(client, email="member@example.com")
        assert res.status_code == 409

    @pytest.mark.parametrize("overrides,status", [
        ({"email": ""}, 400),
        ({"password": ""}, 400),
        ({"email": "not-an-email"}, 422),
        ({"password": "short"}, 422),
        ({"first_name": " "}, 422),
    ])
    def test_validation(self, client, overrides, status):
        assert _register(client, **overrides).status_code == status


class TestLogin:

    def test_login(self, client, pm):
        res = client.post("/api/v1/auth/login",
                          json={"email": "PM@example.com", "password": DEFAULT_PASSWORD})

        assert res.status_code == 200
        body = res.get_json()
        assert body["user"]["id"] == pm.id
        assert body["user"]["last_login_at"] is not None
        payload = jwt.decode(body["access_token"], options={"verify_signature": False})
        assert payload["sub"] == str(pm.id)
        assert payload["role"] == "pm"

    def test_wrong_password(self, client, pm):
        res = client.post("/api/v1/auth/login",
                          json={"email": "pm@example.com", "password": "nope-nope"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid credentials"

    def test_inactive_user(self, client, pm):
        pm.is_active = False
        db.session.commit()

        res = client.post("/api/v1/auth/login",
                          json={"email": "pm@example.com", "password": DEFAULT_PASSWORD})
        assert res.status_code == 401

    def test_missing_fields(self, client):
        assert client.post("/api/v1/auth/login", json={"email": "x@y.test"}).status_code == 400


class TestBearerTokens:

    def test_missing_token(self, client):
        res = client.get("/api/v1/auth/me")
        assert res.status_code == 401
        assert res.get_json()["error"] == "Authentication required"

    def test_garbage_token(self, client):
        res = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer abc.def.ghi"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid token"

    def test_expired_token(self, app, client, pm):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": str(pm.id), "role": "pm", "type": "access",
             "iat": now - timedelta(hours=9), "exp": now - timedelta(hours=1)},
            app.config["JWT_SECRET_KEY"], algorithm="HS256",
        )
        res = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Token expired"

    def test_wrong_token_type(self, app, client, pm):
        token = jwt.encode({"sub": str(pm.id), "role": "pm", "type": "refresh"},
                           app.config["JWT_SECRET_KEY"], algorithm="HS256")
        res = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_token_for_deleted_user(self, client, pm, auth_headers):
        headers = auth_headers(pm)
        db.session.delete(pm)
        db.session.commit()

        assert client.get("/api/v1/auth/me", headers=headers).status_code == 404


class TestUserDirectory:

    def test_role_filter(self, client, pm, other_pm, member, auth_headers):
        res = client.get("/api/v1/users?role=pm", headers=auth_headers(member))
        assert [u["email"] for u in res.get_json()] == ["pm@example.com", "pm2@example.com"]

    def test_unknown_role(self, client, member, auth_headers):
        res = client.get("/api/v1/users?role=owner", headers=auth_headers(member))
        assert res.status_code == 422
