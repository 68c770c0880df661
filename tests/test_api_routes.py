"""Integration tests for the auth REST endpoints.

Covers:
- GET / liveness
- Full password-only flow: signup -> login (200 + cookie) -> verify-token -> logout
- Full 2FA flow: signup -> login (206 + loginAttemptId) -> verify-2fa (200 + cookie)
- 401 for wrong password and unknown email, with identical bodies
- 400 for values that parse as JSON but fail format rules
- 422 for missing fields, wrong JSON types and unparseable bodies
- 409 for duplicate signup and for a second login while a code is outstanding
- 500 when the 2FA email cannot be sent, with the challenge rolled back
- logout: missing token 400, repeated logout 401
- every error body is {"error": "<message>"}
"""

from __future__ import annotations

import asyncio

import pytest

from auth.models import Email

ALICE = "alice@example.com"
PASSWORD = "Abcdefg1"


def _signup(client, email=ALICE, password=PASSWORD, requires_2fa=False):
    return client.post("/signup", json={"email": email, "password": password, "requires2FA": requires_2fa})


def _login(client, email=ALICE, password=PASSWORD):
    return client.post("/login", json={"email": email, "password": password})


def _error(resp) -> str:
    body = resp.json()
    assert set(body) == {"error"}
    return body["error"]


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


def test_root_returns_200(api_client):
    client, _ = api_client
    assert client.get("/").status_code == 200


def test_unknown_route_uses_error_envelope(api_client):
    client, _ = api_client
    resp = client.get("/does-not-exist")
    assert resp.status_code == 404
    assert _error(resp)


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------


class TestSignup:
    def test_signup_created(self, api_client):
        client, _ = api_client
        resp = _signup(client)
        assert resp.status_code == 201
        assert resp.json() == {"message": "User created successfully!"}

    def test_snake_case_flag_accepted(self, api_client):
        client, core = api_client
        resp = client.post("/signup", json={"email": ALICE, "password": PASSWORD, "requires_2fa": True})
        assert resp.status_code == 201
        assert asyncio.run(core.user_store.get_user(Email.parse(ALICE))).requires_2fa is True

    def test_duplicate_signup_conflict(self, api_client):
        client, _ = api_client
        _signup(client)
        resp = _signup(client, password="Another99")
        assert resp.status_code == 409
        assert _error(resp) == "User already exists"

    @pytest.mark.parametrize(
        ("email", "password"),
        [
            ("", PASSWORD),
            ("not-an-email", PASSWORD),
            (ALICE, ""),
            (ALICE, "short1A"),
            (ALICE, "alllowercase1"),
            (ALICE, "ALLUPPERCASE1"),
            (ALICE, "NoDigitsHere"),
        ],
    )
    def test_invalid_formats_are_400(self, api_client, email, password):
        client, _ = api_client
        resp = _signup(client, email=email, password=password)
        assert resp.status_code == 400
        assert _error(resp) == "Invalid credentials"

    @pytest.mark.parametrize(
        "body",
        [
            {"email": ALICE, "password": PASSWORD},
            {"email": ALICE, "requires2FA": False},
            {"password": PASSWORD, "requires2FA": False},
            {"email": 42, "password": PASSWORD, "requires2FA": False},
            {"email": ALICE, "password": PASSWORD, "requires2FA": [1]},
            {"email": ALICE, "password": PASSWORD, "requires2FA": "true"},
            {"email": ALICE, "password": PASSWORD, "requires2FA": 1},
            {"email": ALICE, "password": PASSWORD, "requires_2fa": 0},
        ],
    )
    def test_malformed_bodies_are_422(self, api_client, body):
        client, _ = api_client
        resp = client.post("/signup", json=body)
        assert resp.status_code == 422
        assert _error(resp) == "Malformed input"

    def test_unparseable_json_is_422(self, api_client):
        client, _ = api_client
        resp = client.post("/signup", content=b"{not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 422

    def test_password_not_echoed_in_422(self, api_client):
        client, _ = api_client
        resp = client.post("/signup", json={"email": ALICE, "password": "Sup3rSecretValue", "requires2FA": "x"})
        assert resp.status_code == 422
        assert "Sup3rSecretValue" not in resp.text


# ---------------------------------------------------------------------------
# Password-only login flow
# ---------------------------------------------------------------------------


class TestPasswordFlow:
    def test_full_flow(self, api_client):
        client, _ = api_client
        assert _signup(client).status_code == 201

        resp = _login(client)
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Login successful!"
        assert body["token_type"] == "bearer"
        assert body["expires_in"] == 600
        token = body["access_token"]
        assert resp.cookies.get("jwt") == token
        assert resp.headers["cache-control"] == "no-store"

        resp = client.post("/verify-token", json={"token": token})
        assert resp.status_code == 200
        assert resp.json() == {"message": "Token is valid."}

        resp = client.post("/logout")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out."}
        assert "jwt=" in resp.headers["set-cookie"]
        assert "Max-Age=0" in resp.headers["set-cookie"]

        resp = client.post("/verify-token", json={"token": token})
        assert resp.status_code == 401
        assert _error(resp) == "Invalid auth token"

    def test_repeated_logout_is_401(self, api_client):
        client, _ = api_client
        _signup(client)
        token = _login(client).json()["access_token"]
        client.cookies.clear()

        headers = {"Authorization": f"Bearer {token}"}
        assert client.post("/logout", headers=headers).status_code == 200
        resp = client.post("/logout", headers=headers)
        assert resp.status_code == 401
        assert _error(resp) == "Invalid auth token"

    def test_wrong_password_and_unknown_email_look_alike(self, api_client):
        client, _ = api_client
        _signup(client)
        wrong = _login(client, password="Abcdefg2")
        unknown = _login(client, email="nobody@example.com")
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {"error": "Incorrect credentials"}
        assert "jwt" not in wrong.cookies

    def test_login_invalid_format_is_400(self, api_client):
        client, _ = api_client
        resp = _login(client, email="bad-email")
        assert resp.status_code == 400

    def test_login_missing_field_is_422(self, api_client):
        client, _ = api_client
        resp = client.post("/login", json={"email": ALICE})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Two-factor flow
# ---------------------------------------------------------------------------


class TestTwoFactorFlow:
    def _start(self, client, core):
        _signup(client, requires_2fa=True)
        resp = _login(client)
        assert resp.status_code == 206
        _, code = core.outstanding_challenge(ALICE)
        return resp, code.value

    def test_full_flow(self, api_client):
        client, core = api_client
        resp, code = self._start(client, core)
        body = resp.json()
        assert body["message"] == "2FA required"
        attempt_id = body["loginAttemptId"]
        assert "jwt" not in resp.cookies
        assert "access_token" not in body
        assert len(core.email_client.sent) == 1

        resp = client.post("/verify-2fa", json={"email": ALICE, "loginAttemptId": attempt_id, "2FACode": code})
        assert resp.status_code == 422  # wrong field name for the code

        resp = client.post("/verify-2fa", json={"email": ALICE, "loginAttemptId": attempt_id, "code": code})
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "2FA verification successful!"
        assert resp.cookies.get("jwt") == body["access_token"]

        resp = client.post("/verify-token", json={"token": body["access_token"]})
        assert resp.status_code == 200

    def test_code_cannot_be_reused(self, api_client):
        client, core = api_client
        resp, code = self._start(client, core)
        payload = {"email": ALICE, "loginAttemptId": resp.json()["loginAttemptId"], "code": code}
        assert client.post("/verify-2fa", json=payload).status_code == 200
        resp = client.post("/verify-2fa", json=payload)
        assert resp.status_code == 401
        assert _error(resp) == "Incorrect credentials"

    def test_wrong_code_is_401(self, api_client):
        client, core = api_client
        resp, code = self._start(client, core)
        wrong = f"{(int(code) + 1) % 1_000_000:06d}"
        payload = {"email": ALICE, "loginAttemptId": resp.json()["loginAttemptId"], "code": wrong}
        resp = client.post("/verify-2fa", json=payload)
        assert resp.status_code == 401
        assert _error(resp) == "Incorrect credentials"

    def test_bad_code_format_is_400(self, api_client):
        client, core = api_client
        resp, _ = self._start(client, core)
        payload = {"email": ALICE, "loginAttemptId": resp.json()["loginAttemptId"], "code": "12ab56"}
        assert client.post("/verify-2fa", json=payload).status_code == 400

    def test_bad_attempt_id_format_is_400(self, api_client):
        client, core = api_client
        _, code = self._start(client, core)
        payload = {"email": ALICE, "loginAttemptId": "not-a-uuid", "code": code}
        assert client.post("/verify-2fa", json=payload).status_code == 400

    def test_second_login_while_outstanding_is_409(self, api_client):
        client, core = api_client
        self._start(client, core)
        resp = _login(client)
        assert resp.status_code == 409
        assert _error(resp) == "Login attempt already in progress"

    def test_email_failure_is_500_and_rolled_back(self, api_client):
        client, core = api_client
        _signup(client, requires_2fa=True)
        core.email_client.fail_with = ConnectionError("transport down")
        resp = _login(client)
        assert resp.status_code == 500
        assert _error(resp) == "Unexpected error"

        core.email_client.fail_with = None
        assert _login(client).status_code == 206


# ---------------------------------------------------------------------------
# Token endpoints
# ---------------------------------------------------------------------------


class TestTokenEndpoints:
    def test_verify_empty_token_is_422(self, api_client):
        client, _ = api_client
        resp = client.post("/verify-token", json={"token": ""})
        assert resp.status_code == 422
        assert _error(resp) == "Malformed input"

    def test_verify_garbage_token_is_401(self, api_client):
        client, _ = api_client
        resp = client.post("/verify-token", json={"token": "garbage"})
        assert resp.status_code == 401

    def test_verify_token_missing_field_is_422(self, api_client):
        client, _ = api_client
        assert client.post("/verify-token", json={}).status_code == 422

    def test_logout_without_token_is_400(self, api_client):
        client, _ = api_client
        resp = client.post("/logout")
        assert resp.status_code == 400
        assert _error(resp) == "Missing auth token"

    def test_logout_with_garbage_bearer_is_401(self, api_client):
        client, _ = api_client
        resp = client.post("/logout", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401
