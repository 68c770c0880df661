"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the auth service happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead, or better, receive the values from the wiring code in api/main.py.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. A missing JWT_SECRET is a fatal configuration error: it raises
      while Settings() is being built, which happens when api/main.py is
      imported, so the process never starts serving without a signing key.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authservice.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth_service.db'}"

_STORE_BACKENDS = {"memory", "sql"}
_EMAIL_BACKENDS = {"mock", "postmark"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Everything except JWT_SECRET has a default so a bare `JWT_SECRET=... uvicorn
    asgi:app` runs with in-memory stores and a logging email client.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured"; the validator below
    # refuses to build Settings in that state.
    jwt_secret: str = ""
    token_ttl_seconds: int = 600
    jwt_cookie_name: str = "jwt"
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    store_backend: str = "memory"  # "memory" or "sql"
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Email delivery
    # ------------------------------------------------------------------

    email_backend: str = "mock"  # "mock" or "postmark"
    email_sender: str = ""
    postmark_server_token: str = ""
    postmark_base_url: str = "https://api.postmarkapp.com"
    email_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Password hashing (Argon2id)
    # ------------------------------------------------------------------

    argon2_time_cost: int = 2
    argon2_memory_cost: int = 19456  # KiB
    argon2_parallelism: int = 1
    hash_workers: int = 2

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_allowed_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Refuse to start on a configuration that would fail at first use.

        JWT_SECRET: required and non-empty in every mode. Keys shorter than
            32 characters are accepted but logged, since HS256 strength
            depends on key entropy.

        Backends: unknown names are rejected, and the postmark backend needs
            both a server token and a sender address.
        """
        if not self.jwt_secret.strip():
            raise ValueError(
                "JWT_SECRET is required. Set JWT_SECRET in your environment or .env file."
            )
        if len(self.jwt_secret) < 32:
            logger.warning("JWT_SECRET is shorter than 32 characters; use a longer random key.")
        if self.token_ttl_seconds <= 0:
            raise ValueError("TOKEN_TTL_SECONDS must be positive.")
        if self.store_backend not in _STORE_BACKENDS:
            raise ValueError(f"STORE_BACKEND must be one of {sorted(_STORE_BACKENDS)}, got {self.store_backend!r}.")
        if self.email_backend not in _EMAIL_BACKENDS:
            raise ValueError(f"EMAIL_BACKEND must be one of {sorted(_EMAIL_BACKENDS)}, got {self.email_backend!r}.")
        if self.email_backend == "postmark" and not (self.postmark_server_token and self.email_sender):
            raise ValueError("EMAIL_BACKEND=postmark requires POSTMARK_SERVER_TOKEN and EMAIL_SENDER.")
        if self.hash_workers < 1:
            raise ValueError("HASH_WORKERS must be at least 1.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
