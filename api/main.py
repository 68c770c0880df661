"""
api/main.py -- FastAPI application entry point for the auth service.

Run with:  uvicorn asgi:app --reload
           python main.py serve

Configuration is loaded once, at import, through get_settings(). A missing
JWT_SECRET (or any other invalid setting) raises right here, so the process
aborts before it can accept a request.

Middleware stack (outermost to innermost):
  1. CORSMiddleware      -- CORS headers for the configured browser origins
  2. log_requests        -- one access log line per request with latency

Lifespan builds the collaborators selected by Settings (memory or SQL stores,
mock or Postmark email), hangs one AuthService on app.state, and tears the
hashing pool and database engine down symmetrically on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from auth.email import MockEmailClient, PostmarkEmailClient
from auth.errors import AuthError, ErrorCategory
from auth.hashing import PasswordHasher
from auth.memory_store import MemoryBannedTokenStore, MemoryTwoFACodeStore, MemoryUserStore
from auth.service import AuthService
from auth.store import SqlBannedTokenStore, SqlTwoFACodeStore, SqlUserStore, create_sql_engine
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authservice.api")

# Fail fast: Settings() validates JWT_SECRET and the backend choices.
_settings = get_settings()


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass
class Services:
    """Everything the lifespan builds, plus the callbacks that release it."""

    auth_service: AuthService
    cleanups: list[Callable[[], None]] = field(default_factory=list)

    def close(self) -> None:
        for cleanup in reversed(self.cleanups):
            cleanup()


def build_services(settings: Settings) -> Services:
    """Assemble the auth core from settings.

    Backends are chosen here and nowhere else; AuthService only sees the
    store and email protocols.
    """
    hasher = PasswordHasher(
        time_cost=settings.argon2_time_cost,
        memory_cost=settings.argon2_memory_cost,
        parallelism=settings.argon2_parallelism,
        max_workers=settings.hash_workers,
    )
    cleanups: list[Callable[[], None]] = [hasher.shutdown]

    if settings.store_backend == "sql":
        engine = create_sql_engine(settings.database_url)
        cleanups.append(engine.dispose)
        user_store = SqlUserStore(engine, hasher)
        banned_token_store = SqlBannedTokenStore(engine)
        two_fa_code_store = SqlTwoFACodeStore(engine)
    else:
        user_store = MemoryUserStore(hasher)
        banned_token_store = MemoryBannedTokenStore()
        two_fa_code_store = MemoryTwoFACodeStore()

    if settings.email_backend == "postmark":
        email_client = PostmarkEmailClient(
            server_token=settings.postmark_server_token,
            sender=settings.email_sender,
            base_url=settings.postmark_base_url,
            timeout=settings.email_timeout_seconds,
        )
        cleanups.append(email_client.close)
    else:
        email_client = MockEmailClient(log_content=settings.debug)

    tokens = TokenIssuer(settings.jwt_secret, settings.token_ttl_seconds, banned_token_store)
    service = AuthService(
        user_store=user_store,
        banned_token_store=banned_token_store,
        two_fa_code_store=two_fa_code_store,
        email_client=email_client,
        hasher=hasher,
        tokens=tokens,
    )
    logger.info(
        "Auth core wired (stores=%s, email=%s, token_ttl=%ds)",
        settings.store_backend,
        settings.email_backend,
        settings.token_ttl_seconds,
    )
    return Services(auth_service=service, cleanups=cleanups)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth core on startup and release it on shutdown."""
    logger.info("Auth service starting up")
    services = build_services(_settings)
    app.state.settings = _settings
    app.state.auth_service = services.auth_service

    yield

    services.close()
    logger.info("Auth service shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Auth Service",
    description="Signup, login with optional email second factor, and revocable bearer tokens.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error response is ErrorResponse: {"error": "<message>"}. AuthError
# categories map to status codes through _ERROR_TABLE only; the exception's
# own text goes to the server log, never to the client.
# ---------------------------------------------------------------------------

_ERROR_TABLE: dict[ErrorCategory, tuple[int, str]] = {
    ErrorCategory.INVALID_INPUT: (400, "Invalid credentials"),
    ErrorCategory.MISSING_TOKEN: (400, "Missing auth token"),
    ErrorCategory.UNAUTHORIZED: (401, "Incorrect credentials"),
    ErrorCategory.INVALID_TOKEN: (401, "Invalid auth token"),
    ErrorCategory.CONFLICT: (409, "Conflict"),
    ErrorCategory.MALFORMED_INPUT: (422, "Malformed input"),
    ErrorCategory.UNEXPECTED: (500, "Unexpected error"),
}


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    status_code, message = _ERROR_TABLE[exc.category]
    if exc.public_message:
        message = exc.public_message
    if status_code >= 500:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    else:
        logger.debug("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return _error_response(status_code, message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when the JSON body is missing, unparseable, or has wrong-typed fields.

    The pydantic error detail is not echoed back: it can contain the
    submitted values, including passwords.
    """
    return _error_response(422, "Malformed input")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is logged server-side only. The client receives a
    generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "Unexpected error")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return liveness and current version."""
    return HealthResponse(version=__version__)
