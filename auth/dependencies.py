"""
auth/dependencies.py -- FastAPI Depends() helpers for the access gate.

The session token is looked for in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. "jwt" cookie -- set by the login flow for browsers.

get_current_identity() raises 401 through AuthService.authenticate();
require_role(...) builds a dependency that additionally raises 403 when the
caller's role is not allowed. Both return an Identity value that the route
receives as a parameter; nothing is stashed on the request.

Layer rule: no imports from api/. auth/dependencies.py may import from fastapi
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.models import Identity
from auth.service import AuthService
from auth.tokens import SESSION_COOKIE


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def extract_token(request: Request) -> str | None:
    """Return the bearer token from the header, else the session cookie, else None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(SESSION_COOKIE) or None


def get_current_identity(
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> Identity:
    """Require authentication. Raises Unauthorized (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    return service.authenticate(extract_token(request))


def require_role(*roles: str) -> Callable[..., Identity]:
    """Build a dependency that requires one of `roles`. Raises Forbidden (403) otherwise.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        def route(identity: Identity = Depends(require_role("admin"))): ...
    """
    allowed = frozenset(roles)

    def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        return AuthService.authorize(identity, allowed)

    return dependency
