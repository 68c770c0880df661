"""
auth/protocols.py -- Contracts for the pluggable collaborators of the auth core.

Three independent key-value stores and one email transport. Each store has an
in-memory implementation (auth/memory_store.py) and a durable SQL one
(auth/store.py); api/main.py picks one per process from Settings. AuthService
depends only on these protocols.

Concurrency contract for every store: reads may run concurrently; a mutation
holds exclusive access for its one logical operation, and any
check-then-write sequence (exists? -> insert) happens inside that hold or
through a backend-native atomic insert.

Error contract: the documented AuthError subclasses for expected outcomes,
StoreUnexpectedError for anything the backend did that it should not have.
"""

from __future__ import annotations

from typing import Protocol

from auth.models import Email, LoginAttemptId, TwoFACode, User


class UserStore(Protocol):
    async def add_user(self, user: User) -> None:
        """Insert user. Raises UserAlreadyExistsError if the email is taken."""
        ...

    async def get_user(self, email: Email) -> User:
        """Return the user. Raises UserNotFoundError."""
        ...

    async def validate_user(self, email: Email, raw_password: str) -> None:
        """Check a password. Raises UserNotFoundError or InvalidCredentialsError."""
        ...


class BannedTokenStore(Protocol):
    async def ban_token(self, token: str) -> None:
        """Record token as revoked. Raises TokenAlreadyBannedError on a repeat."""
        ...

    async def is_banned(self, token: str) -> bool: ...


class TwoFACodeStore(Protocol):
    async def add_code(self, email: Email, login_attempt_id: LoginAttemptId, code: TwoFACode) -> None:
        """Store a challenge. Raises TwoFACodeAlreadyExistsError if one is outstanding."""
        ...

    async def get_code(self, email: Email) -> tuple[LoginAttemptId, TwoFACode]:
        """Return the outstanding challenge. Raises TwoFACodeNotFoundError."""
        ...

    async def remove_code(self, email: Email) -> None:
        """Delete the outstanding challenge. Raises TwoFACodeNotFoundError."""
        ...


class EmailClient(Protocol):
    async def send_email(self, recipient: Email, subject: str, content: str) -> None:
        """Deliver one message. Raises EmailDeliveryError on any failure."""
        ...
