"""
API request and response models for the auth service REST endpoints.

These Pydantic v2 models define the HTTP transport contract only: field
presence and JSON types. A missing field or a wrong JSON type fails here and
becomes a 422. Format rules (what a valid email or password looks like) are
NOT repeated here -- they belong to auth/models.py and surface as 400s, so
the two error classes stay distinct.

Wire names follow the existing client contract: requires2FA and
loginAttemptId are camelCase on the wire. Snake-case spellings are accepted
on input as well.
"""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /signup."""

    model_config = ConfigDict(populate_by_name=True)

    email: str
    password: str
    requires_2fa: StrictBool = Field(validation_alias=AliasChoices("requires2FA", "requires_2fa"))


class LoginRequest(BaseModel):
    """Request body for POST /login."""

    email: str
    password: str


class Verify2FARequest(BaseModel):
    """Request body for POST /verify-2fa."""

    model_config = ConfigDict(populate_by_name=True)

    email: str
    login_attempt_id: str = Field(validation_alias=AliasChoices("loginAttemptId", "login_attempt_id"))
    code: str


class VerifyTokenRequest(BaseModel):
    """Request body for POST /verify-token."""

    token: str


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class TokenResponse(BaseModel):
    """Successful authentication. The same token is also set as the auth cookie."""

    model_config = ConfigDict(frozen=True)

    message: str
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class TwoFactorAuthResponse(BaseModel):
    """206 body: the password checked out and a code was emailed."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str
    login_attempt_id: str = Field(serialization_alias="loginAttemptId")


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response: one human-readable message."""

    model_config = ConfigDict(frozen=True)

    error: str


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
