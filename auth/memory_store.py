"""
auth/memory_store.py -- In-memory reference implementations of the store contracts.

State lives in plain dicts/sets for the process lifetime. Each store guards
its container with a ReadWriteLock; no method awaits while holding it, so a
lock hold is a handful of dict operations. validate_user() releases the lock
before handing the hash to the worker pool.

Used by default (STORE_BACKEND=memory) and throughout the test suite.
"""

from __future__ import annotations

from auth.errors import (
    TokenAlreadyBannedError,
    TwoFACodeAlreadyExistsError,
    TwoFACodeNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from auth.hashing import PasswordHasher, check_credentials
from auth.locks import ReadWriteLock
from auth.models import Email, LoginAttemptId, TwoFACode, User


class MemoryUserStore:
    def __init__(self, hasher: PasswordHasher) -> None:
        self._hasher = hasher
        self._users: dict[Email, User] = {}
        self._lock = ReadWriteLock()

    async def add_user(self, user: User) -> None:
        with self._lock.write_locked():
            if user.email in self._users:
                raise UserAlreadyExistsError(f"user {user.email.redacted()} already exists")
            self._users[user.email] = user

    async def get_user(self, email: Email) -> User:
        with self._lock.read_locked():
            user = self._users.get(email)
        if user is None:
            raise UserNotFoundError(f"user {email.redacted()} not found")
        return user

    async def validate_user(self, email: Email, raw_password: str) -> None:
        user = await self.get_user(email)
        await check_credentials(self._hasher, user.password, raw_password)


class MemoryBannedTokenStore:
    def __init__(self) -> None:
        self._tokens: set[str] = set()
        self._lock = ReadWriteLock()

    async def ban_token(self, token: str) -> None:
        with self._lock.write_locked():
            if token in self._tokens:
                raise TokenAlreadyBannedError("token already banned")
            self._tokens.add(token)

    async def is_banned(self, token: str) -> bool:
        with self._lock.read_locked():
            return token in self._tokens


class MemoryTwoFACodeStore:
    def __init__(self) -> None:
        self._codes: dict[Email, tuple[LoginAttemptId, TwoFACode]] = {}
        self._lock = ReadWriteLock()

    async def add_code(self, email: Email, login_attempt_id: LoginAttemptId, code: TwoFACode) -> None:
        with self._lock.write_locked():
            if email in self._codes:
                raise TwoFACodeAlreadyExistsError(f"challenge already outstanding for {email.redacted()}")
            self._codes[email] = (login_attempt_id, code)

    async def get_code(self, email: Email) -> tuple[LoginAttemptId, TwoFACode]:
        with self._lock.read_locked():
            entry = self._codes.get(email)
        if entry is None:
            raise TwoFACodeNotFoundError(f"no challenge for {email.redacted()}")
        return entry

    async def remove_code(self, email: Email) -> None:
        with self._lock.write_locked():
            if self._codes.pop(email, None) is None:
                raise TwoFACodeNotFoundError(f"no challenge for {email.redacted()}")
