"""
auth/hashing.py -- Argon2id password hashing on a dedicated worker pool.

Security design decisions:
  Algorithm: Argon2id through argon2-cffi. It is memory-hard, so GPU/ASIC
       brute force is expensive, and the PHC output string embeds algorithm,
       version, cost parameters and salt -- verification re-derives with
       whatever parameters the stored hash carries, so cost can be raised
       later without invalidating existing hashes.

  Worker pool: derivation is deliberately slow (tens of ms at the default
       cost). PasswordHasher owns its own ThreadPoolExecutor and every hash or
       verify call is awaited on it, so the event loop and the request thread
       pool keep serving while a derivation runs. Any failure of the pool
       itself is raised as HashingError; a call never hangs or vanishes.

  Oracle resistance: verify() distinguishes a mismatch from a malformed hash
       (PasswordMismatchError vs MalformedHashError) for internal logging.
       Stores collapse both into InvalidCredentialsError before anything
       reaches a caller.

  Timing equalization: verify_dummy() runs a full verification against a hash
       computed at construction. Login calls it when the email is unknown so
       response time does not reveal whether an account exists.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from argon2 import PasswordHasher as _Argon2Hasher
from argon2 import Type, extract_parameters
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from auth.errors import HashingError, InvalidCredentialsError, MalformedHashError, PasswordMismatchError
from auth.models import Password

logger = logging.getLogger("authservice.hashing")

_T = TypeVar("_T")

_DUMMY_PASSWORD = "TimingDummy-0000"


@dataclass(frozen=True)
class HashedPassword:
    """A PHC-encoded Argon2id hash. Safe to persist, never displayed."""

    value: str = field(repr=False)

    @classmethod
    async def parse(cls, raw: str, hasher: PasswordHasher) -> HashedPassword:
        """Re-check the raw password policy, then hash it off the event loop."""
        return await hasher.hash(Password.parse(raw))

    @classmethod
    def parse_from_storage(cls, encoded: str) -> HashedPassword:
        """Validate a persisted hash record without re-hashing.

        Raises MalformedHashError if the string is not an Argon2id PHC record.
        """
        try:
            params = extract_parameters(encoded)
        except InvalidHashError as exc:
            raise MalformedHashError("stored password hash is not a valid Argon2 record") from exc
        if params.type is not Type.ID:
            raise MalformedHashError("stored password hash is not Argon2id")
        return cls(encoded)

    def __repr__(self) -> str:
        return "HashedPassword('[REDACTED]')"

    def __str__(self) -> str:
        return "[REDACTED]"


class PasswordHasher:
    """Async facade over argon2-cffi backed by a private thread pool.

    Usage:
        hasher = PasswordHasher()
        hashed = await hasher.hash(Password.parse("Abcdefg1"))
        await hasher.verify(hashed, "Abcdefg1")
        hasher.shutdown()
    """

    def __init__(
        self,
        time_cost: int = 2,
        memory_cost: int = 19456,
        parallelism: int = 1,
        max_workers: int = 2,
    ) -> None:
        self._argon2 = _Argon2Hasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            type=Type.ID,
        )
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="argon2")
        # Computed synchronously once so the first unknown-email login is not
        # measurably slower than later ones.
        self._dummy_hash = self._argon2.hash(_DUMMY_PASSWORD)

    async def _run(self, fn: Callable[..., _T], *args) -> _T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, functools.partial(fn, *args))
        except (PasswordMismatchError, MalformedHashError):
            raise
        except Exception as exc:
            logger.error("Hashing worker failed: %s", type(exc).__name__)
            raise HashingError("password hashing task failed") from exc

    async def hash(self, password: Password) -> HashedPassword:
        """Derive a salted Argon2id hash for an already-validated password."""
        encoded = await self._run(self._argon2.hash, password.value)
        return HashedPassword(encoded)

    async def verify(self, hashed: HashedPassword, candidate: str) -> None:
        """Raise PasswordMismatchError unless candidate matches hashed.

        argon2-cffi compares digests in constant time.
        """
        await self._run(self._verify_sync, hashed.value, candidate)

    async def verify_dummy(self, candidate: str) -> None:
        """Spend one verification's worth of work; the outcome is irrelevant."""
        try:
            await self._run(self._verify_sync, self._dummy_hash, candidate)
        except PasswordMismatchError:
            pass

    def _verify_sync(self, encoded: str, candidate: str) -> None:
        try:
            self._argon2.verify(encoded, candidate)
        except VerifyMismatchError as exc:
            raise PasswordMismatchError("password does not match") from exc
        except (InvalidHashError, VerificationError) as exc:
            raise MalformedHashError("stored password hash could not be verified") from exc

    def shutdown(self) -> None:
        """Wait for in-flight derivations and stop the worker threads."""
        self._executor.shutdown(wait=True)


async def check_credentials(hasher: PasswordHasher, hashed: HashedPassword, candidate: str) -> None:
    """Verify candidate for a store's validate_user().

    Mismatch and malformed hash both become InvalidCredentialsError so the
    caller cannot tell them apart. HashingError (pool failure) passes through
    as an internal error.
    """
    try:
        await hasher.verify(hashed, candidate)
    except PasswordMismatchError as exc:
        raise InvalidCredentialsError("password verification failed") from exc
    except MalformedHashError as exc:
        logger.error("Stored password hash failed verification as malformed")
        raise InvalidCredentialsError("password verification failed") from exc
