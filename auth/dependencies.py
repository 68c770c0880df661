"""
auth/dependencies.py -- Transport boundary for bearer tokens.

The service layer takes a token string; this module is the only place that
knows where a token lives on an HTTP request. Two sources, checked in order:
  1. The auth cookie (name from Settings.jwt_cookie_name) -- set by /login
     and /verify-2fa.
  2. Authorization: Bearer <token> -- for API clients without a cookie jar.

extract_token() returns None when neither is present (the logout flow turns
that into MissingTokenError) and returns the raw value, possibly "", when one
is present, so an empty cookie is reported as an invalid token rather than a
missing one.

Layer rule: may import from fastapi/starlette because this is the HTTP seam.
No imports from api/.
"""

from __future__ import annotations

from fastapi import Request

_BEARER_PREFIX = "Bearer "


def extract_token(request: Request, cookie_name: str) -> str | None:
    token = request.cookies.get(cookie_name)
    if token is not None:
        return token

    auth_header = request.headers.get("Authorization")
    if auth_header is not None and auth_header.startswith(_BEARER_PREFIX):
        return auth_header[len(_BEARER_PREFIX) :].strip()
    return None
