"""
tests/test_api_routes.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> access-gate
dependencies -> AuthService -> UserStore -> response serialization and the
error envelope. The recording notifier stands in for SMTP so the emailed
verification link can be followed like a real user would.

Coverage:
  - signup -> login before verification (401) -> verify-email -> login (200 + cookie)
  - identical 401 bodies for unknown email and wrong password
  - 2FA: setup/confirm, login returns temp token with NO cookie, verify completes login
  - access gate: no token, bad token, deleted user; Bearer header and cookie both work
  - role gate: admin-only route 403 for users, 200 for admins
  - logout clears the cookie; malformed bodies map to 400
"""

from __future__ import annotations

import time

import pyotp
from fastapi.testclient import TestClient
from jose import jwt

PASSWORD = "longpass1"


def _set_cookie_headers(resp) -> list[str]:
    return [v for k, v in resp.headers.multi_items() if k.lower() == "set-cookie"]


def _login(client: TestClient, email: str = "ann@example.com", password: str = PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestSignupVerifyLogin:
    def test_end_to_end(self, api_client: TestClient, notifier, store) -> None:
        resp = api_client.post("/api/v1/auth/signup", json={"name": "Ann", "email": "a@x.com", "password": PASSWORD})
        assert resp.status_code == 201, resp.text
        assert resp.json() == {"status": "success", "message": "Verification email sent"}
        assert not _set_cookie_headers(resp), "signup must never log the user in"

        resp = _login(api_client, "a@x.com")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "email_not_verified"

        token = notifier.last_token()
        resp = api_client.get("/api/v1/auth/verify-email", params={"token": token})
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "success"

        resp = api_client.get("/api/v1/auth/verify-email", params={"token": token})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "already_verified"

        resp = _login(api_client, "a@x.com")
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert set(body["user"]) == {"id", "name", "email", "role"}
        assert body["user"]["email"] == "a@x.com"
        assert body["token"]
        assert resp.headers["cache-control"] == "no-store"
        cookie = next(h for h in _set_cookie_headers(resp) if h.startswith("jwt="))
        attrs = [part.strip().lower() for part in cookie.split(";")[1:]]
        assert "httponly" in attrs
        assert "secure" not in attrs  # test environment is not production

        # The cookie alone authenticates subsequent requests
        me = api_client.get("/api/v1/auth/me")
        assert me.status_code == 200
        assert me.json()["email"] == "a@x.com"

    def test_signup_duplicate_and_validation(self, api_client: TestClient, make_user) -> None:
        make_user("ann@example.com")
        resp = api_client.post(
            "/api/v1/auth/signup", json={"name": "Ann", "email": "ANN@example.com", "password": PASSWORD}
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "duplicate_email"

        resp = api_client.post("/api/v1/auth/signup", json={"name": "A", "email": "bad", "password": "x"})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "validation_error"
        assert {f["field"] for f in error["fields"]} == {"name", "email", "password"}

    def test_non_object_body_is_400(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/signup", json=["not", "an", "object"])
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_verify_email_without_token(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/verify-email")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_verify_email_with_bad_token(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/verify-email", params={"token": "garbage"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_verify_email_with_oversized_user_id(self, api_client: TestClient) -> None:
        forged = jwt.encode(
            {"sub": "x", "user_id": 2**70, "purpose": "verify_email"}, "some-other-key", algorithm="HS256"
        )
        resp = api_client.get("/api/v1/auth/verify-email", params={"token": forged})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_bad_credentials_are_indistinguishable(self, api_client: TestClient, make_user) -> None:
        make_user("ann@example.com")
        unknown = _login(api_client, "nobody@example.com")
        wrong = _login(api_client, "ann@example.com", "wrong-password")
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()


class TestTwoFactorRoutes:
    def test_full_cycle(self, api_client: TestClient, make_user, store) -> None:
        uid = make_user("ann@example.com")
        token = _login(api_client).json()["token"]
        api_client.cookies.clear()

        resp = api_client.post("/api/v1/auth/2fa/setup", headers=_bearer(token))
        assert resp.status_code == 200, resp.text
        secret = resp.json()["secret"]
        assert resp.json()["otpauthURL"].startswith("otpauth://totp/")
        assert store.get_by_id(uid).two_factor_enabled is False

        resp = api_client.post("/api/v1/auth/2fa/confirm", json={"code": "abc"}, headers=_bearer(token))
        assert resp.status_code == 400

        resp = api_client.post(
            "/api/v1/auth/2fa/confirm", json={"code": pyotp.TOTP(secret).now()}, headers=_bearer(token)
        )
        assert resp.status_code == 200, resp.text
        assert resp.json() == {"message": "2FA enabled successfully"}

        resp = api_client.post("/api/v1/auth/2fa/setup", headers=_bearer(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "already_enabled"

        # Login now stops at the step-up: temp token, no session cookie
        resp = _login(api_client)
        assert resp.status_code == 200
        body = resp.json()
        assert body["twoFactorEnabled"] is True
        assert "token" not in body
        assert not _set_cookie_headers(resp)
        temp = body["tempToken"]

        # The temp token is not a session
        assert api_client.get("/api/v1/auth/me", headers=_bearer(temp)).status_code == 401

        stale = pyotp.TOTP(secret).at(time.time() - 600)
        resp = api_client.post("/api/v1/auth/2fa/verify", json={"tempToken": temp, "code": stale})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_code"

        resp = api_client.post("/api/v1/auth/2fa/verify", json={"tempToken": temp, "code": pyotp.TOTP(secret).now()})
        assert resp.status_code == 200, resp.text
        assert resp.json()["user"]["id"] == uid
        assert any(h.startswith("jwt=") for h in _set_cookie_headers(resp))

        resp = api_client.post("/api/v1/auth/2fa/disable", headers=_bearer(token))
        assert resp.status_code == 200
        resp = api_client.post("/api/v1/auth/2fa/disable", headers=_bearer(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "not_enabled"

    def test_verify_with_bad_temp_token(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/2fa/verify", json={"tempToken": "garbage", "code": "123456"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_confirm_without_setup(self, api_client: TestClient, make_user) -> None:
        make_user("ann@example.com")
        token = _login(api_client).json()["token"]
        resp = api_client.post("/api/v1/auth/2fa/confirm", json={"code": "123456"}, headers=_bearer(token))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_setup"

    def test_enrollment_requires_auth(self, api_client: TestClient) -> None:
        for path in ("/api/v1/auth/2fa/setup", "/api/v1/auth/2fa/confirm", "/api/v1/auth/2fa/disable"):
            assert api_client.post(path, json={"code": "123456"}).status_code == 401


class TestAccessGate:
    def test_no_token(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_bad_bearer(self, api_client: TestClient) -> None:
        assert api_client.get("/api/v1/auth/me", headers=_bearer("not.a.token")).status_code == 401

    def test_bearer_header_beats_cookie(self, api_client: TestClient, make_user) -> None:
        make_user("ann@example.com")
        make_user("bob@example.com", name="Bob")
        bob = _login(api_client, "bob@example.com").json()["token"]
        api_client.cookies.clear()
        ann = _login(api_client).json()["token"]
        resp = api_client.get("/api/v1/auth/me", headers=_bearer(bob))
        assert resp.status_code == 200
        assert resp.json()["email"] == "bob@example.com"
        assert ann != bob

    def test_deleted_user(self, api_client: TestClient, make_user, store) -> None:
        uid = make_user("ann@example.com")
        token = _login(api_client).json()["token"]
        api_client.cookies.clear()
        store.delete_user(uid)
        resp = api_client.get("/api/v1/auth/me", headers=_bearer(token))
        assert resp.status_code == 401

    def test_admin_route(self, api_client: TestClient, make_user) -> None:
        make_user("ann@example.com")
        make_user("root@example.com", name="Root", role="admin")
        user_token = _login(api_client).json()["token"]
        admin_token = _login(api_client, "root@example.com").json()["token"]
        api_client.cookies.clear()

        resp = api_client.get("/api/v1/auth/users", headers=_bearer(user_token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

        resp = api_client.get("/api/v1/auth/users", headers=_bearer(admin_token))
        assert resp.status_code == 200
        assert {u["email"] for u in resp.json()} == {"ann@example.com", "root@example.com"}
        assert all(set(u) == {"id", "name", "email", "role"} for u in resp.json())

        assert api_client.get("/api/v1/auth/users").status_code == 401


class TestLogout:
    def test_logout_clears_cookie(self, api_client: TestClient, make_user) -> None:
        make_user("ann@example.com")
        _login(api_client)
        assert api_client.get("/api/v1/auth/me").status_code == 200

        resp = api_client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"status": "success", "message": "Logged out successfully"}
        cleared = next(h for h in _set_cookie_headers(resp) if h.startswith("jwt="))
        assert "max-age=0" in cleared.lower()

        assert api_client.get("/api/v1/auth/me").status_code == 401

    def test_logout_without_session(self, api_client: TestClient) -> None:
        assert api_client.post("/api/v1/auth/logout").status_code == 200
