"""
api/routes/auth.py -- Authentication REST endpoints.

Routes:
  GET  /               -- liveness probe for the login/signup page; 200
  POST /signup         -- register an identity; 201
  POST /login          -- password login; 200 + JWT cookie, or 206 + loginAttemptId
  POST /verify-2fa     -- second factor; 200 + JWT cookie
  POST /logout         -- revoke the presented token and clear the cookie; 200
  POST /verify-token   -- check a token; 200

Handlers stay thin: parse the JSON body (422 on a malformed body), call
AuthService with raw strings, and translate the result into a response.
Failures propagate as AuthError and are mapped to status codes in one place,
the exception handler in api/main.py.

Security:
  Cache-Control: no-store on every response that carries a token.
  Bodies are never logged; they contain passwords and codes.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from api.models import (
    LoginRequest,
    MessageResponse,
    SignupRequest,
    TokenResponse,
    TwoFactorAuthResponse,
    Verify2FARequest,
    VerifyTokenRequest,
)
from auth.dependencies import extract_token
from auth.service import AuthService, TokenGranted
from auth.tokens import clear_auth_cookie, set_auth_cookie
from core.config import Settings

router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _token_response(request: Request, token: str, message: str) -> JSONResponse:
    settings = _settings(request)
    resp = JSONResponse(
        status_code=200,
        content=TokenResponse(
            message=message,
            access_token=token,
            expires_in=settings.token_ttl_seconds,
        ).model_dump(),
    )
    set_auth_cookie(
        resp,
        token,
        name=settings.jwt_cookie_name,
        max_age=settings.token_ttl_seconds,
        secure=settings.secure_cookies,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/")
async def login_or_signup() -> Response:
    return Response(status_code=200)


@router.post("/signup", status_code=201, response_model=MessageResponse)
async def signup(request: Request, body: SignupRequest) -> MessageResponse:
    await _service(request).signup(body.email, body.password, body.requires_2fa)
    return MessageResponse(message="User created successfully!")


@router.post("/login", response_model=TokenResponse)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    200 with the token (body and cookie) for accounts without a second
    factor; 206 with loginAttemptId once a code has been emailed. Unknown
    email and wrong password are both 401 with the same message.
    """
    result = await _service(request).login(body.email, body.password)
    if isinstance(result, TokenGranted):
        return _token_response(request, result.token, "Login successful!")

    return JSONResponse(
        status_code=206,
        content=TwoFactorAuthResponse(
            message="2FA required",
            login_attempt_id=result.login_attempt_id.value,
        ).model_dump(by_alias=True),
        headers={"Cache-Control": "no-store"},
    )


@router.post("/verify-2fa", response_model=TokenResponse)
async def verify_2fa(request: Request, body: Verify2FARequest) -> JSONResponse:
    token = await _service(request).verify_2fa(body.email, body.login_attempt_id, body.code)
    return _token_response(request, token, "2FA verification successful!")


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request) -> JSONResponse:
    """Revoke the token from the auth cookie (or Bearer header) and clear the cookie."""
    settings = _settings(request)
    token = extract_token(request, settings.jwt_cookie_name)
    await _service(request).logout(token)

    resp = JSONResponse(status_code=200, content=MessageResponse(message="Logged out.").model_dump())
    clear_auth_cookie(resp, name=settings.jwt_cookie_name, secure=settings.secure_cookies)
    return resp


@router.post("/verify-token", response_model=MessageResponse)
async def verify_token(request: Request, body: VerifyTokenRequest) -> MessageResponse:
    await _service(request).verify_token(body.token)
    return MessageResponse(message="Token is valid.")
