"""
auth/tokens.py -- JWT bearer tokens and the auth cookie.

Security design decisions:
  JWT: python-jose with HS256. A token carries the subject email (sub), an
       absolute expiry (exp), the issue time (iat) and a random id (jti). The
       jti makes every issued token distinct, so a user who logs out and logs
       straight back in is not handed the string that was just revoked.
       Expiry lives inside the signed payload; the issuer keeps no session
       state.

  Revocation: TokenIssuer.validate() consults the banned-token ledger after
       the signature and expiry checks. A token is valid only when all three
       pass.

  Secret: passed in by the wiring code from Settings.jwt_secret, which is
       validated at startup. TokenIssuer also refuses an empty secret so a
       mis-wired test or script fails at construction rather than at first use.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import EmailError, InvalidTokenError, MalformedTokenError
from auth.models import Email
from auth.protocols import BannedTokenStore

logger = logging.getLogger("authservice.tokens")

_ALGORITHM = "HS256"

# python-jose only checks claims that are present; a token without exp would
# never expire.
_DECODE_OPTIONS = {"require_exp": True, "require_iat": True, "require_sub": True}


class TokenIssuer:
    """Mint and check signed, time-limited bearer tokens bound to an email.

    Usage:
        issuer = TokenIssuer(secret, ttl_seconds=600, banned_token_store=ledger)
        token = issuer.issue(email)
        email = await issuer.validate(token)
    """

    def __init__(self, secret: str, ttl_seconds: int, banned_token_store: BannedTokenStore) -> None:
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret
        self.ttl_seconds = ttl_seconds
        self._banned_token_store = banned_token_store

    def issue(self, email: Email) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": email.value,
            "iat": now,
            "exp": now + timedelta(seconds=self.ttl_seconds),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    async def validate(self, token: str) -> Email:
        """Return the email bound to token.

        Raises MalformedTokenError for an empty or structurally invalid token,
        InvalidTokenError for a bad signature, an expired token, a bad subject,
        or a token in the revoked ledger.
        """
        if not token:
            raise MalformedTokenError("empty token")
        try:
            jwt.get_unverified_header(token)
        except JWTError as exc:
            raise MalformedTokenError("token is not a JWT") from exc

        try:
            payload = jwt.decode(token, self._secret, algorithms=[_ALGORITHM], options=_DECODE_OPTIONS)
        except JWTError as exc:
            # ExpiredSignatureError and JWTClaimsError are JWTError subclasses.
            raise InvalidTokenError(f"token rejected: {type(exc).__name__}") from exc

        try:
            email = Email.parse(str(payload.get("sub", "")))
        except EmailError as exc:
            raise InvalidTokenError("token subject is not a valid email") from exc

        if await self._banned_token_store.is_banned(token):
            raise InvalidTokenError("token has been revoked")
        return email


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, *, name: str, max_age: int, secure: bool = False) -> None:
    """Write the JWT as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POSTs (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT TTL so cookie and token expire together.
    """
    response.set_cookie(
        name,
        value=token,
        path="/",
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )


def clear_auth_cookie(response, *, name: str, secure: bool = False) -> None:
    """Expire the auth cookie on the client."""
    response.delete_cookie(name, path="/", httponly=True, samesite="lax", secure=secure)
