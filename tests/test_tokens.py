"""Unit tests for auth/tokens.py -- JWT issue/validate and cookie helpers.

Covers:
- issue() then validate() returns the bound email
- every issued token is distinct, even for the same email
- expired, wrong-secret, tampered and revoked tokens are InvalidTokenError
- empty and non-JWT strings are MalformedTokenError
- a signed token whose subject is not an email is rejected
- set_auth_cookie / clear_auth_cookie attributes
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.responses import JSONResponse
from jose import jwt

from auth.errors import InvalidTokenError, MalformedTokenError
from auth.memory_store import MemoryBannedTokenStore
from auth.models import Email
from auth.tokens import TokenIssuer, clear_auth_cookie, set_auth_cookie

SECRET = "unit-test-signing-key-0123456789abcdef"
ALICE = Email.parse("alice@example.com")


@pytest.fixture
def ledger():
    return MemoryBannedTokenStore()


@pytest.fixture
def issuer(ledger):
    return TokenIssuer(SECRET, ttl_seconds=600, banned_token_store=ledger)


class TestIssueAndValidate:
    def test_round_trip(self, issuer):
        token = issuer.issue(ALICE)
        assert asyncio.run(issuer.validate(token)) == ALICE

    def test_claims(self, issuer):
        claims = jwt.decode(issuer.issue(ALICE), SECRET, algorithms=["HS256"])
        assert claims["sub"] == "alice@example.com"
        assert claims["exp"] - claims["iat"] == 600
        assert claims["jti"]

    def test_tokens_are_unique(self, issuer):
        assert issuer.issue(ALICE) != issuer.issue(ALICE)

    def test_empty_secret_refused(self, ledger):
        with pytest.raises(ValueError):
            TokenIssuer("", ttl_seconds=600, banned_token_store=ledger)


class TestRejection:
    def test_expired_token(self, ledger):
        expired_issuer = TokenIssuer(SECRET, ttl_seconds=-10, banned_token_store=ledger)
        token = expired_issuer.issue(ALICE)
        with pytest.raises(InvalidTokenError):
            asyncio.run(expired_issuer.validate(token))

    def test_wrong_secret(self, issuer, ledger):
        other = TokenIssuer("a-completely-different-signing-key-xyz", ttl_seconds=600, banned_token_store=ledger)
        with pytest.raises(InvalidTokenError):
            asyncio.run(issuer.validate(other.issue(ALICE)))

    def test_tampered_signature(self, issuer):
        token = issuer.issue(ALICE)
        head, payload, signature = token.split(".")
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
        with pytest.raises(InvalidTokenError):
            asyncio.run(issuer.validate(f"{head}.{payload}.{flipped}"))

    def test_revoked_token(self, issuer, ledger):
        token = issuer.issue(ALICE)
        asyncio.run(ledger.ban_token(token))
        with pytest.raises(InvalidTokenError):
            asyncio.run(issuer.validate(token))

    def test_revoking_one_token_leaves_others_valid(self, issuer, ledger):
        first = issuer.issue(ALICE)
        second = issuer.issue(ALICE)
        asyncio.run(ledger.ban_token(first))
        assert asyncio.run(issuer.validate(second)) == ALICE

    def test_empty_token_is_malformed(self, issuer):
        with pytest.raises(MalformedTokenError):
            asyncio.run(issuer.validate(""))

    @pytest.mark.parametrize("token", ["not-a-jwt", "a.b.c", "...."])
    def test_garbage_is_malformed(self, issuer, token):
        with pytest.raises(MalformedTokenError):
            asyncio.run(issuer.validate(token))

    def test_subject_not_an_email(self, issuer):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "not an email", "iat": now, "exp": now + timedelta(minutes=5)}, SECRET, algorithm="HS256"
        )
        with pytest.raises(InvalidTokenError):
            asyncio.run(issuer.validate(token))

    def test_token_without_expiry_rejected(self, issuer):
        """A correctly signed token for a real subject is still refused without exp."""
        token = jwt.encode({"sub": "alice@example.com", "iat": datetime.now(timezone.utc)}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            asyncio.run(issuer.validate(token))

    def test_token_without_subject_rejected(self, issuer):
        now = datetime.now(timezone.utc)
        token = jwt.encode({"iat": now, "exp": now + timedelta(minutes=5)}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            asyncio.run(issuer.validate(token))

    def test_token_without_issue_time_rejected(self, issuer):
        token = jwt.encode(
            {"sub": "alice@example.com", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            SECRET,
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            asyncio.run(issuer.validate(token))


class TestCookies:
    def test_set_auth_cookie(self):
        resp = JSONResponse({})
        set_auth_cookie(resp, "tok", name="jwt", max_age=600)
        header = resp.headers["set-cookie"]
        assert header.startswith("jwt=tok")
        assert "HttpOnly" in header
        assert "Max-Age=600" in header
        assert "Path=/" in header
        assert "samesite=lax" in header.lower()
        assert "Secure" not in header

    def test_secure_flag(self):
        resp = JSONResponse({})
        set_auth_cookie(resp, "tok", name="jwt", max_age=600, secure=True)
        assert "Secure" in resp.headers["set-cookie"]

    def test_clear_auth_cookie_expires_it(self):
        resp = JSONResponse({})
        clear_auth_cookie(resp, name="jwt")
        header = resp.headers["set-cookie"]
        assert header.startswith('jwt=""') or header.startswith("jwt=;")
        assert "Max-Age=0" in header
