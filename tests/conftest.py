"""
tests/conftest.py -- Shared test fixtures for the auth service.

This module provides:
  - hasher: one cheap-parameter Argon2id PasswordHasher for the session
  - core: a fully wired AuthService over fresh in-memory stores
  - sql_engine: a SQLAlchemy engine over a temporary SQLite file
  - api_client: TestClient on the real FastAPI app with a patched lifespan

Design: the real lifespan builds collaborators from Settings, including a
production-cost hasher. _patch_lifespan() swaps that for the test core so
every route runs against isolated stores and a MockEmailClient that records
what it "sent".

JWT_SECRET must be set before api.main is imported: the app loads Settings
at import and refuses to start without a secret.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: set before any api/core import so get_settings() succeeds.
os.environ.setdefault("JWT_SECRET", "test-secret-key-with-more-than-32-characters")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.email import MockEmailClient
from auth.hashing import PasswordHasher
from auth.memory_store import MemoryBannedTokenStore, MemoryTwoFACodeStore, MemoryUserStore
from auth.models import Email, LoginAttemptId, TwoFACode
from auth.service import AuthService
from auth.store import create_sql_engine
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings


@dataclass
class Core:
    """The wired auth core plus direct handles on its collaborators."""

    service: AuthService
    user_store: MemoryUserStore
    banned_token_store: MemoryBannedTokenStore
    two_fa_code_store: MemoryTwoFACodeStore
    email_client: MockEmailClient
    tokens: TokenIssuer
    hasher: PasswordHasher

    def outstanding_challenge(self, email: str) -> tuple[LoginAttemptId, TwoFACode]:
        return asyncio.run(self.two_fa_code_store.get_code(Email.parse(email)))


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> Generator[PasswordHasher, None, None]:
    """Argon2id at minimum cost so each hash takes about a millisecond."""
    h = PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1, max_workers=4)
    yield h
    h.shutdown()


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def core(hasher: PasswordHasher, settings: Settings) -> Core:
    user_store = MemoryUserStore(hasher)
    banned_token_store = MemoryBannedTokenStore()
    two_fa_code_store = MemoryTwoFACodeStore()
    email_client = MockEmailClient()
    tokens = TokenIssuer(settings.jwt_secret, settings.token_ttl_seconds, banned_token_store)
    service = AuthService(
        user_store=user_store,
        banned_token_store=banned_token_store,
        two_fa_code_store=two_fa_code_store,
        email_client=email_client,
        hasher=hasher,
        tokens=tokens,
    )
    return Core(
        service=service,
        user_store=user_store,
        banned_token_store=banned_token_store,
        two_fa_code_store=two_fa_code_store,
        email_client=email_client,
        tokens=tokens,
        hasher=hasher,
    )


@pytest.fixture
def sql_engine(tmp_path):
    """Engine over a throwaway SQLite file.

    A file (not ':memory:') so worker threads opened by asyncio.to_thread
    all see the same database with ordinary SQLite locking.
    """
    engine = create_sql_engine(f"sqlite:///{tmp_path / 'auth_test.db'}")
    yield engine
    engine.dispose()


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(core: Core, settings: Settings):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.auth_service = core.service
        yield

    return test_lifespan


@pytest.fixture
def api_client(core: Core, settings: Settings) -> Generator[tuple[TestClient, Core], None, None]:
    """Yield (client, core) with a fresh in-memory core per test.

    raise_server_exceptions=False so 500 responses produced by the catch-all
    handler reach the test as responses.
    """
    app.router.lifespan_context = _patch_lifespan(core, settings)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, core
