"""
Authentication and session tests.

Verifies:
- Login by username or email, bad credentials return 401
- Logout revokes the token
- Weak passwords are rejected when creating users
- /health is public
"""

import pytest

from retailhub.services.auth_service import PasswordValidationError, create_user


DEFAULT_PASSWORD = "Password123!"


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestLogin:

    @pytest.mark.parametrize("identifier", ["cashier", "cashier@retailhub.local"])
    def test_login(self, client, cashier, identifier):
        resp = client.post("/api/auth/login", json={"username": identifier, "password": DEFAULT_PASSWORD})
        data = resp.get_json()

        assert resp.status_code == 200
        assert data["user"]["role"] == "cashier"
        assert len(data["token"]) == 64

        me = client.get("/api/auth/me", headers=auth_headers(data["token"]))
        assert me.status_code == 200
        assert me.get_json()["user"]["username"] == "cashier"

    def test_bad_password(self, client, cashier):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "Wrong123!"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid credentials"

    def test_missing_fields(self, client, store):
        assert client.post("/api/auth/login", json={"username": "cashier"}).status_code == 400

    def test_logout_revokes_token(self, client, cashier_headers):
        assert client.get("/api/auth/me", headers=cashier_headers).status_code == 200
        assert client.post("/api/auth/logout", headers=cashier_headers).status_code == 200

        resp = client.get("/api/auth/me", headers=cashier_headers)
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid or expired token"

    def test_missing_or_garbage_token(self, client, store):
        assert client.get("/api/auth/me").status_code == 401
        assert client.get("/api/auth/me", headers=auth_headers("not-a-token")).status_code == 401


class TestUserCreation:

    @pytest.mark.parametrize("password", ["short1!", "alllowercase1!", "NoDigits!!", "NoSpecial123"])
    def test_weak_passwords(self, store, password):
        with pytest.raises(PasswordValidationError):
            create_user("weak", "weak@retailhub.local", password, store_id=store.id)

    def test_duplicate_and_unknown_role(self, cashier, store):
        with pytest.raises(ValueError, match="already exists"):
            create_user("cashier", "other@retailhub.local", DEFAULT_PASSWORD, store_id=store.id)
        with pytest.raises(ValueError, match="Role must be one of"):
            create_user("owner", "owner@retailhub.local", DEFAULT_PASSWORD, role="owner", store_id=store.id)


class TestPublicEndpoints:

    def test_health(self, client, store):
        resp = client.get("/health")
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["database"]["details"]["stores"] == 1
