"""
auth/service.py -- Signup, login, second factor, logout and token checks.

AuthService is the transport-agnostic core. Routes hand it raw strings and
get back parsed values or an AuthError; nothing here knows about HTTP,
cookies or JSON.

Login state machine (validated email + raw password):
  1. unknown email            -> UserNotFoundError (401, timing equalized)
  2. wrong password           -> InvalidCredentialsError (401)
  3. match, no second factor  -> TokenGranted
  4. match, second factor     -> new LoginAttemptId + TwoFACode stored, then
                                 emailed -> TwoFactorRequired (no token yet)
  5. verify_2fa               -> challenge looked up, both fields compared,
                                 challenge removed, then token issued

Ordering: in step 4 the challenge insert completes (or is rejected) before
any email is sent. In step 5 removal completes before the token exists, and
removal failing because another request already consumed the challenge is a
401, so one code can never mint two tokens.

Concurrent logins for the same email while a challenge is outstanding are
serialized by the store's TwoFACodeAlreadyExistsError, not by locking here.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass

from auth.errors import (
    AuthError,
    EmailDeliveryError,
    InvalidTokenError,
    MalformedTokenError,
    MissingTokenError,
    TokenAlreadyBannedError,
    TokenError,
    TwoFACodeNotFoundError,
    UnauthorizedError,
    UnexpectedError,
    UserNotFoundError,
)
from auth.hashing import HashedPassword, PasswordHasher
from auth.models import Email, LoginAttemptId, Password, TwoFACode, User
from auth.protocols import BannedTokenStore, EmailClient, TwoFACodeStore, UserStore
from auth.tokens import TokenIssuer

logger = logging.getLogger("authservice.auth")

TWO_FA_EMAIL_SUBJECT = "2FA Code"


@dataclass(frozen=True)
class TokenGranted:
    token: str


@dataclass(frozen=True)
class TwoFactorRequired:
    login_attempt_id: LoginAttemptId


LoginResult = TokenGranted | TwoFactorRequired


class AuthService:
    def __init__(
        self,
        user_store: UserStore,
        banned_token_store: BannedTokenStore,
        two_fa_code_store: TwoFACodeStore,
        email_client: EmailClient,
        hasher: PasswordHasher,
        tokens: TokenIssuer,
    ) -> None:
        self.user_store = user_store
        self.banned_token_store = banned_token_store
        self.two_fa_code_store = two_fa_code_store
        self.email_client = email_client
        self.hasher = hasher
        self.tokens = tokens

    # ------------------------------------------------------------------
    # Signup
    # ------------------------------------------------------------------

    async def signup(self, email: str, password: str, requires_2fa: bool) -> User:
        """Register a new identity. Raises EmailError/PasswordError (400) or UserAlreadyExistsError (409)."""
        parsed_email = Email.parse(email)
        hashed = await HashedPassword.parse(password, self.hasher)
        user = User(email=parsed_email, password=hashed, requires_2fa=requires_2fa)
        await self.user_store.add_user(user)
        logger.info("Signed up %s (2fa=%s)", parsed_email.redacted(), requires_2fa)
        return user

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> LoginResult:
        parsed_email = Email.parse(email)
        Password.parse(password)

        try:
            await self.user_store.validate_user(parsed_email, password)
        except UserNotFoundError:
            # Same work as a real verification so an unknown email and a wrong
            # password take equally long.
            await self.hasher.verify_dummy(password)
            logger.info("Login failed for %s: unknown email", parsed_email.redacted())
            raise
        except AuthError as exc:
            logger.info("Login failed for %s: %s", parsed_email.redacted(), type(exc).__name__)
            raise

        user = await self.user_store.get_user(parsed_email)
        if not user.requires_2fa:
            logger.info("Login succeeded for %s", parsed_email.redacted())
            return TokenGranted(self.tokens.issue(parsed_email))

        return await self._start_two_factor(parsed_email)

    async def _start_two_factor(self, email: Email) -> TwoFactorRequired:
        login_attempt_id = LoginAttemptId.generate()
        code = TwoFACode.generate()
        await self.two_fa_code_store.add_code(email, login_attempt_id, code)

        try:
            await self.email_client.send_email(email, TWO_FA_EMAIL_SUBJECT, f"Your verification code is {code.value}")
        except EmailDeliveryError as exc:
            # The code never reached the user; drop the challenge so the next
            # login attempt is not rejected as already in progress.
            try:
                await self.two_fa_code_store.remove_code(email)
            except TwoFACodeNotFoundError:
                logger.warning("Challenge for %s vanished before rollback", email.redacted())
            raise UnexpectedError("could not deliver 2FA code") from exc

        logger.info("2FA challenge issued for %s", email.redacted())
        return TwoFactorRequired(login_attempt_id)

    # ------------------------------------------------------------------
    # Second factor
    # ------------------------------------------------------------------

    async def verify_2fa(self, email: str, login_attempt_id: str, code: str) -> str:
        """Consume a challenge and return a token.

        Raises an InvalidInputError subclass (400) for bad formats and
        UnauthorizedError/TwoFACodeNotFoundError (401) for everything else,
        without saying which field was wrong.
        """
        parsed_email = Email.parse(email)
        parsed_attempt_id = LoginAttemptId.parse(login_attempt_id)
        parsed_code = TwoFACode.parse(code)

        stored_attempt_id, stored_code = await self.two_fa_code_store.get_code(parsed_email)

        # Evaluate both comparisons before branching so neither short-circuits.
        attempt_ok = hmac.compare_digest(parsed_attempt_id.value, stored_attempt_id.value)
        code_ok = hmac.compare_digest(parsed_code.value, stored_code.value)
        if not (attempt_ok and code_ok):
            logger.info("2FA verification failed for %s", parsed_email.redacted())
            raise UnauthorizedError("login attempt id or code mismatch")

        try:
            await self.two_fa_code_store.remove_code(parsed_email)
        except TwoFACodeNotFoundError as exc:
            raise UnauthorizedError("challenge already consumed") from exc

        logger.info("2FA verification succeeded for %s", parsed_email.redacted())
        return self.tokens.issue(parsed_email)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def verify_token(self, token: str) -> Email:
        """Raises MalformedTokenError (422) for an empty token, InvalidTokenError (401) otherwise."""
        if not token:
            raise MalformedTokenError("empty token")
        try:
            return await self.tokens.validate(token)
        except TokenError as exc:
            raise InvalidTokenError("token failed validation") from exc

    async def logout(self, token: str | None) -> None:
        """Revoke token.

        None -> MissingTokenError (400). Empty, invalid, expired, or already
        revoked -> InvalidTokenError (401); a repeated logout is an error,
        not a success.
        """
        if token is None:
            raise MissingTokenError("no auth token presented")
        if not token:
            raise InvalidTokenError("empty token")
        try:
            email = await self.tokens.validate(token)
        except TokenError as exc:
            raise InvalidTokenError("token failed validation") from exc

        try:
            await self.banned_token_store.ban_token(token)
        except TokenAlreadyBannedError as exc:
            raise InvalidTokenError("token already revoked") from exc
        logger.info("Logged out %s", email.redacted())
