"""
auth/models.py -- Value types and domain dataclasses for authentication.

Pattern: parse, don't validate. Each value type has a parse() classmethod that
either returns a normalized, immutable instance or raises an InvalidInputError
subclass. Code past the HTTP boundary only ever sees parsed values, so the
format rules live here and nowhere else.

Redaction: Password and HashedPassword never render their contents in repr()
or str(). Email.redacted() is the only form of an address that goes into logs.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import re
import secrets
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from auth.errors import (
    EmailError,
    EmailErrorKind,
    LoginAttemptIdError,
    PasswordError,
    PasswordErrorKind,
    TwoFACodeError,
)

if TYPE_CHECKING:
    from auth.hashing import HashedPassword

# HTML5 "valid e-mail address" grammar: a permissive local part and a domain
# of dot-separated hostname labels. Labels cannot start or end with a hyphen,
# so a leading/trailing dot or an empty label never matches.
_LOCAL_PART = r"[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+"
_DOMAIN_LABEL = r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
_EMAIL_RE = re.compile(rf"(?P<local>{_LOCAL_PART})@(?P<domain>{_DOMAIN_LABEL}(?:\.{_DOMAIN_LABEL})*)")

_MAX_LOCAL_LEN = 64
_MAX_DOMAIN_LEN = 255

PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128

_ASCII_DIGITS = frozenset("0123456789")
CODE_LENGTH = 6

_ATTEMPT_ID_RE = re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Email:
    """A trimmed, syntactically valid email address.

    Equality and hashing use the normalized string, so Email is safe to use
    as a dict key -- every per-user store is keyed by it.
    """

    value: str

    @classmethod
    def parse(cls, raw: str) -> Email:
        candidate = raw.strip()
        if not candidate:
            raise EmailError(EmailErrorKind.EMPTY)
        match = _EMAIL_RE.fullmatch(candidate)
        if match is None:
            raise EmailError(EmailErrorKind.INVALID_FORMAT)
        if len(match["local"]) > _MAX_LOCAL_LEN or len(match["domain"]) > _MAX_DOMAIN_LEN:
            raise EmailError(EmailErrorKind.INVALID_FORMAT)
        return cls(candidate)

    def redacted(self) -> str:
        """Return the address with most of the local part masked, for log lines."""
        local, domain = self.value.split("@", 1)
        return f"{local[:2]}***@{domain}"

    def __str__(self) -> str:
        return self.value


# ---------------------------------------------------------------------------
# Password (raw)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Password:
    """A plaintext password that passed the format policy.

    Exists only while a signup or login request is being handled. Rules are
    checked in a fixed order and the first failure wins, so callers get one
    reason, not an exhaustive report.
    """

    value: str = field(repr=False)

    @classmethod
    def parse(cls, raw: str) -> Password:
        if not raw:
            raise PasswordError(PasswordErrorKind.EMPTY)
        length = len(raw)
        if length < PASSWORD_MIN_LEN:
            raise PasswordError(PasswordErrorKind.TOO_SHORT)
        if length > PASSWORD_MAX_LEN:
            raise PasswordError(PasswordErrorKind.TOO_LONG)
        if not any(c.isupper() for c in raw):
            raise PasswordError(PasswordErrorKind.MISSING_UPPERCASE)
        if not any(c.islower() for c in raw):
            raise PasswordError(PasswordErrorKind.MISSING_LOWERCASE)
        if not any(c in _ASCII_DIGITS for c in raw):
            raise PasswordError(PasswordErrorKind.MISSING_DIGIT)
        return cls(raw)

    def __repr__(self) -> str:
        return "Password('[REDACTED]')"

    def __str__(self) -> str:
        return "[REDACTED]"


# ---------------------------------------------------------------------------
# Second factor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TwoFACode:
    """Exactly six ASCII digits. Other Unicode digit scripts are rejected."""

    value: str = field(repr=False)

    @classmethod
    def parse(cls, raw: str) -> TwoFACode:
        if len(raw) != CODE_LENGTH:
            raise TwoFACodeError(f"code must be exactly {CODE_LENGTH} digits, got {len(raw)} characters")
        if not all(c in _ASCII_DIGITS for c in raw):
            raise TwoFACodeError("code must contain only digits 0-9")
        return cls(raw)

    @classmethod
    def generate(cls) -> TwoFACode:
        return cls(f"{secrets.randbelow(1_000_000):06d}")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class LoginAttemptId:
    """Opaque correlation id for a login awaiting its second factor.

    Canonical form is a lowercase hyphenated UUID (8-4-4-4-12 hex digits).
    Parsing is case-insensitive but the hyphen layout is strict: braces, URN
    prefixes and dehyphenated hex are all rejected.
    """

    value: str

    @classmethod
    def parse(cls, raw: str) -> LoginAttemptId:
        if raw.count("-") != 4 or _ATTEMPT_ID_RE.fullmatch(raw) is None:
            raise LoginAttemptIdError("login attempt id must be a hyphenated UUID")
        return cls(raw.lower())

    @classmethod
    def generate(cls) -> LoginAttemptId:
        return cls(str(uuid.uuid4()))

    def __str__(self) -> str:
        return self.value


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class User:
    """A registered identity.

    Immutable: an update means replacing the record in its store, never
    mutating it in place.
    """

    email: Email
    password: HashedPassword = field(repr=False)
    requires_2fa: bool = False
