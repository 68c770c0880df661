"""
auth/errors.py -- Exception taxonomy for the auth core.

Every failure the core can produce is an AuthError subclass. Each class
carries a fixed ErrorCategory; the HTTP layer (api/main.py) maps categories
to status codes through a single table, so one error variant always lands
on exactly one API outcome.

Messages on these exceptions are for server-side logs. They never contain a
password, a hash, or a one-time code, and they are never sent to clients --
the HTTP layer substitutes a generic per-category message.

Layer rule: stdlib only. No imports from api/ or core/.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    INVALID_INPUT = "invalid_input"
    MISSING_TOKEN = "missing_token"
    UNAUTHORIZED = "unauthorized"
    INVALID_TOKEN = "invalid_token"
    CONFLICT = "conflict"
    MALFORMED_INPUT = "malformed_input"
    UNEXPECTED = "unexpected"


class AuthError(Exception):
    """Base class for every error raised by the auth core."""

    category: ErrorCategory = ErrorCategory.UNEXPECTED
    public_message: str | None = None


# ---------------------------------------------------------------------------
# Input validation -- value type parse failures (400)
# ---------------------------------------------------------------------------


class InvalidInputError(AuthError):
    category = ErrorCategory.INVALID_INPUT


class EmailErrorKind(str, Enum):
    EMPTY = "empty"
    INVALID_FORMAT = "invalid_format"


class PasswordErrorKind(str, Enum):
    EMPTY = "empty"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    MISSING_UPPERCASE = "missing_uppercase"
    MISSING_LOWERCASE = "missing_lowercase"
    MISSING_DIGIT = "missing_digit"


class EmailError(InvalidInputError):
    def __init__(self, kind: EmailErrorKind) -> None:
        super().__init__(f"invalid email: {kind.value}")
        self.kind = kind


class PasswordError(InvalidInputError):
    def __init__(self, kind: PasswordErrorKind) -> None:
        super().__init__(f"invalid password: {kind.value}")
        self.kind = kind


class TwoFACodeError(InvalidInputError):
    pass


class LoginAttemptIdError(InvalidInputError):
    pass


# ---------------------------------------------------------------------------
# Credential hashing
# ---------------------------------------------------------------------------


class PasswordMismatchError(AuthError):
    """The candidate password does not match the stored hash."""

    category = ErrorCategory.UNAUTHORIZED


class MalformedHashError(AuthError):
    """A stored hash string is not a well-formed Argon2 record."""

    category = ErrorCategory.UNEXPECTED


class HashingError(AuthError):
    """The hashing worker pool failed to produce a result."""

    category = ErrorCategory.UNEXPECTED


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class StoreUnexpectedError(AuthError):
    """Backend failure, or corrupt data read back from a backend."""

    category = ErrorCategory.UNEXPECTED


class UserAlreadyExistsError(AuthError):
    category = ErrorCategory.CONFLICT
    public_message = "User already exists"


class UserNotFoundError(AuthError):
    # Unknown email at login is reported exactly like a wrong password so the
    # response does not reveal whether an account exists.
    category = ErrorCategory.UNAUTHORIZED


class InvalidCredentialsError(AuthError):
    category = ErrorCategory.UNAUTHORIZED


class TokenAlreadyBannedError(AuthError):
    category = ErrorCategory.INVALID_TOKEN


class TwoFACodeAlreadyExistsError(AuthError):
    category = ErrorCategory.CONFLICT
    public_message = "Login attempt already in progress"


class TwoFACodeNotFoundError(AuthError):
    category = ErrorCategory.UNAUTHORIZED


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class MissingTokenError(AuthError):
    category = ErrorCategory.MISSING_TOKEN


class TokenError(AuthError):
    category = ErrorCategory.INVALID_TOKEN


class MalformedTokenError(TokenError):
    """Empty or structurally invalid token."""

    category = ErrorCategory.MALFORMED_INPUT


class InvalidTokenError(TokenError):
    """Bad signature, expired, or revoked."""


# ---------------------------------------------------------------------------
# Login flow
# ---------------------------------------------------------------------------


class UnauthorizedError(AuthError):
    category = ErrorCategory.UNAUTHORIZED


class EmailDeliveryError(AuthError):
    category = ErrorCategory.UNEXPECTED


class UnexpectedError(AuthError):
    category = ErrorCategory.UNEXPECTED
