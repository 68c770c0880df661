"""
auth/store.py -- SQLAlchemy Core persistence for the three auth stores.

Pattern: Repository + Data Mapper. Each Sql*Store is a repository over one
table; _row_to_user is the mapper. Service code never touches SQL directly.

Atomicity:
  Uniqueness lives in the schema. users.email, banned_tokens.token and
  two_fa_codes.email are primary keys, so a duplicate insert fails with
  IntegrityError no matter how many processes share the database. That is
  mapped to the store's AlreadyExists error. On top of that, every store
  takes its ReadWriteLock around each statement so in-process readers and
  writers follow the same single-writer discipline as the memory stores
  (and SQLite shared-cache connections never see a table lock).

Blocking I/O:
  SQLAlchemy Core here is synchronous. Each public coroutine pushes its
  statement onto a worker thread with asyncio.to_thread so the event loop is
  never blocked on the database.

Corruption:
  A row whose email or password hash does not parse is reported as
  StoreUnexpectedError, never passed on and never crashing the worker.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from auth.errors import (
    EmailError,
    InvalidInputError,
    MalformedHashError,
    StoreUnexpectedError,
    TokenAlreadyBannedError,
    TwoFACodeAlreadyExistsError,
    TwoFACodeNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from auth.hashing import HashedPassword, PasswordHasher, check_credentials
from auth.locks import ReadWriteLock
from auth.models import Email, LoginAttemptId, TwoFACode, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("email", String(320), primary_key=True),
    Column("password_hash", Text, nullable=False),
    Column("requires_2fa", Boolean, nullable=False, default=False),
    Column("created_at", String(32), nullable=False),
)

_banned_tokens = Table(
    "banned_tokens",
    _metadata,
    Column("token", Text, primary_key=True),
    Column("banned_at", String(32), nullable=False),
)

_two_fa_codes = Table(
    "two_fa_codes",
    _metadata,
    Column("email", String(320), primary_key=True),
    Column("login_attempt_id", String(36), nullable=False),
    Column("code", String(6), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _is_sqlite_memory(db_url: str) -> bool:
    """True for 'sqlite://', 'sqlite:///:memory:' and mode=memory URI databases."""
    url = make_url(db_url)
    if url.get_backend_name() != "sqlite":
        return False
    database = url.database or ""
    return database in ("", ":memory:") or url.query.get("mode") == "memory"


def create_sql_engine(db_url: str) -> Engine:
    """Create an engine for db_url and make sure all auth tables exist.

    SQLite URLs get check_same_thread=False (statements run on worker
    threads). File databases get WAL mode; in-memory ones use StaticPool so
    every thread sees the same single database.
    """
    connect_args: dict = {}
    kwargs: dict = {}
    is_sqlite = make_url(db_url).get_backend_name() == "sqlite"
    in_memory = _is_sqlite_memory(db_url)
    if is_sqlite:
        connect_args["check_same_thread"] = False
        if in_memory:
            kwargs["poolclass"] = StaticPool
    engine = create_engine(db_url, connect_args=connect_args, **kwargs)
    if is_sqlite and not in_memory:
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class SqlUserStore:
    """Identity store backed by the users table.

    Usage:
        engine = create_sql_engine("sqlite:///auth.db")
        store = SqlUserStore(engine, hasher)
        await store.add_user(user)
    """

    def __init__(self, engine: Engine, hasher: PasswordHasher) -> None:
        self.engine = engine
        self._hasher = hasher
        self._lock = ReadWriteLock()

    async def add_user(self, user: User) -> None:
        await asyncio.to_thread(self._insert_user, user)

    async def get_user(self, email: Email) -> User:
        return await asyncio.to_thread(self._select_user, email)

    async def validate_user(self, email: Email, raw_password: str) -> None:
        user = await self.get_user(email)
        await check_credentials(self._hasher, user.password, raw_password)

    def _insert_user(self, user: User) -> None:
        with self._lock.write_locked():
            try:
                with self.engine.connect() as conn:
                    conn.execute(
                        _users.insert().values(
                            email=user.email.value,
                            password_hash=user.password.value,
                            requires_2fa=user.requires_2fa,
                            created_at=_now_iso(),
                        )
                    )
                    conn.commit()
            except IntegrityError as exc:
                raise UserAlreadyExistsError(f"user {user.email.redacted()} already exists") from exc
            except SQLAlchemyError as exc:
                raise StoreUnexpectedError("user insert failed") from exc

    def _select_user(self, email: Email) -> User:
        with self._lock.read_locked():
            try:
                with self.engine.connect() as conn:
                    row = conn.execute(_users.select().where(_users.c.email == email.value)).fetchone()
            except SQLAlchemyError as exc:
                raise StoreUnexpectedError("user lookup failed") from exc
        if row is None:
            raise UserNotFoundError(f"user {email.redacted()} not found")
        return _row_to_user(row)


class SqlBannedTokenStore:
    """Revoked-token ledger backed by the banned_tokens table. Rows are never deleted."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._lock = ReadWriteLock()

    async def ban_token(self, token: str) -> None:
        await asyncio.to_thread(self._insert_token, token)

    async def is_banned(self, token: str) -> bool:
        return await asyncio.to_thread(self._select_token, token)

    def _insert_token(self, token: str) -> None:
        with self._lock.write_locked():
            try:
                with self.engine.connect() as conn:
                    conn.execute(_banned_tokens.insert().values(token=token, banned_at=_now_iso()))
                    conn.commit()
            except IntegrityError as exc:
                raise TokenAlreadyBannedError("token already banned") from exc
            except SQLAlchemyError as exc:
                raise StoreUnexpectedError("token ban failed") from exc

    def _select_token(self, token: str) -> bool:
        with self._lock.read_locked():
            try:
                with self.engine.connect() as conn:
                    row = conn.execute(
                        _banned_tokens.select().where(_banned_tokens.c.token == token)
                    ).fetchone()
            except SQLAlchemyError as exc:
                raise StoreUnexpectedError("banned token lookup failed") from exc
        return row is not None


class SqlTwoFACodeStore:
    """Outstanding 2FA challenges, one row per email."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._lock = ReadWriteLock()

    async def add_code(self, email: Email, login_attempt_id: LoginAttemptId, code: TwoFACode) -> None:
        await asyncio.to_thread(self._insert_code, email, login_attempt_id, code)

    async def get_code(self, email: Email) -> tuple[LoginAttemptId, TwoFACode]:
        return await asyncio.to_thread(self._select_code, email)

    async def remove_code(self, email: Email) -> None:
        await asyncio.to_thread(self._delete_code, email)

    def _insert_code(self, email: Email, login_attempt_id: LoginAttemptId, code: TwoFACode) -> None:
        with self._lock.write_locked():
            try:
                with self.engine.connect() as conn:
                    conn.execute(
                        _two_fa_codes.insert().values(
                            email=email.value,
                            login_attempt_id=login_attempt_id.value,
                            code=code.value,
                            created_at=_now_iso(),
                        )
                    )
                    conn.commit()
            except IntegrityError as exc:
                raise TwoFACodeAlreadyExistsError(f"challenge already outstanding for {email.redacted()}") from exc
            except SQLAlchemyError as exc:
                raise StoreUnexpectedError("2FA code insert failed") from exc

    def _select_code(self, email: Email) -> tuple[LoginAttemptId, TwoFACode]:
        with self._lock.read_locked():
            try:
                with self.engine.connect() as conn:
                    row = conn.execute(
                        _two_fa_codes.select().where(_two_fa_codes.c.email == email.value)
                    ).fetchone()
            except SQLAlchemyError as exc:
                raise StoreUnexpectedError("2FA code lookup failed") from exc
        if row is None:
            raise TwoFACodeNotFoundError(f"no challenge for {email.redacted()}")
        try:
            return LoginAttemptId.parse(row.login_attempt_id), TwoFACode.parse(row.code)
        except InvalidInputError as exc:
            raise StoreUnexpectedError("stored 2FA challenge is corrupt") from exc

    def _delete_code(self, email: Email) -> None:
        with self._lock.write_locked():
            try:
                with self.engine.connect() as conn:
                    deleted = conn.execute(
                        _two_fa_codes.delete().where(_two_fa_codes.c.email == email.value)
                    ).rowcount
                    conn.commit()
            except SQLAlchemyError as exc:
                raise StoreUnexpectedError("2FA code delete failed") from exc
        if deleted == 0:
            raise TwoFACodeNotFoundError(f"no challenge for {email.redacted()}")


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    try:
        email = Email.parse(row.email)
        password = HashedPassword.parse_from_storage(row.password_hash)
    except (EmailError, MalformedHashError) as exc:
        raise StoreUnexpectedError("stored user record is corrupt") from exc
    return User(email=email, password=password, requires_2fa=bool(row.requires_2fa))
