"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes (mounted under /api/v1):
  POST /auth/signup         -- create unverified account, email verification link; 201
  GET  /auth/verify-email   -- consume verification token (?token=...)
  POST /auth/login          -- password login; session cookie, or 2FA step-up token
  POST /auth/2fa/verify     -- step-up token + code -> session cookie
  POST /auth/2fa/setup      -- start 2FA enrollment (requires auth)
  POST /auth/2fa/confirm    -- finish 2FA enrollment with a code (requires auth)
  POST /auth/2fa/disable    -- turn 2FA off (requires auth)
  POST /auth/logout         -- clears cookie; always 200
  GET  /auth/me             -- current identity (requires auth)
  GET  /auth/users          -- list accounts (admin only)

Every failure is an AuthError raised by AuthService; api/main.py renders it.
Handlers are plain `def`: FastAPI runs them in its threadpool, and each one
waits for the store and the notifier in order before responding.

Security:
  [C1] AuthService.login() equalizes timing for unknown emails.
  [M5] Cache-Control: no-store on every response that carries a token.
  The session cookie is never set while a 2FA step-up is pending.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.responses import JSONResponse

from api.models import (
    LoginResponse,
    MessageResponse,
    StatusResponse,
    StepUpResponse,
    TwoFactorSetupResponse,
    UserOut,
)
from auth.dependencies import get_auth_service, get_current_identity, require_role
from auth.models import Identity, LoginResult
from auth.service import AuthService
from auth.tokens import clear_auth_cookie, set_auth_cookie

# Auth policy:
# - signup, verify-email, login, 2fa/verify, logout:  public
# - 2fa/setup, 2fa/confirm, 2fa/disable, me:           requires auth (get_current_identity)
# - users:                                             requires admin (require_role("admin"))
router = APIRouter()


def _session_response(request: Request, result: LoginResult) -> JSONResponse:
    """Render a completed login: token in the body AND in the httpOnly cookie."""
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(token=result.token, user=UserOut.from_identity(result.identity)).model_dump(),
    )
    set_auth_cookie(resp, result.token, request.app.state.settings)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=StatusResponse, status_code=status.HTTP_201_CREATED)
def signup(
    payload: Optional[dict[str, Any]] = Body(default=None),
    service: AuthService = Depends(get_auth_service),
) -> StatusResponse:
    """Register a new account. Responds only after the verification email went out."""
    service.signup(payload or {})
    return StatusResponse(message="Verification email sent")


@router.get("/auth/verify-email", response_model=StatusResponse)
def verify_email(
    token: Optional[str] = None,
    service: AuthService = Depends(get_auth_service),
) -> StatusResponse:
    service.verify_email({"token": token})
    return StatusResponse(message="Email verified successfully")


@router.post("/auth/login", response_model=LoginResponse | StepUpResponse)
def login(
    request: Request,
    payload: Optional[dict[str, Any]] = Body(default=None),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email and password.

    With 2FA enabled the response carries only a temp token for /2fa/verify
    and NO cookie. Otherwise the session token is returned and set as cookie.
    """
    result = service.login(payload or {})
    if result.two_factor_required:
        resp = JSONResponse(status_code=200, content=StepUpResponse(tempToken=result.temp_token).model_dump())
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp
    return _session_response(request, result)


@router.post("/auth/2fa/verify", response_model=LoginResponse)
def verify_2fa(
    request: Request,
    payload: Optional[dict[str, Any]] = Body(default=None),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Second login step: exchange the temp token and a TOTP code for a session."""
    result = service.verify_2fa(payload or {})
    return _session_response(request, result)


@router.post("/auth/logout", response_model=StatusResponse)
def logout(request: Request) -> JSONResponse:
    """Clear the session cookie. Needs no prior auth and always succeeds."""
    resp = JSONResponse(content=StatusResponse(message="Logged out successfully").model_dump())
    clear_auth_cookie(resp, request.app.state.settings)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/2fa/setup", response_model=TwoFactorSetupResponse)
def setup_2fa(
    identity: Identity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Generate a pending TOTP secret. The caller renders otpauthURL as a QR code."""
    setup = service.setup_2fa(identity)
    resp = JSONResponse(
        content=TwoFactorSetupResponse(secret=setup.secret, otpauthURL=setup.otpauth_url).model_dump()
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/2fa/confirm", response_model=MessageResponse)
def confirm_2fa(
    payload: Optional[dict[str, Any]] = Body(default=None),
    identity: Identity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    service.confirm_2fa(identity, payload or {})
    return MessageResponse(message="2FA enabled successfully")


@router.post("/auth/2fa/disable", response_model=MessageResponse)
def disable_2fa(
    identity: Identity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    service.disable_2fa(identity)
    return MessageResponse(message="2FA disabled successfully")


@router.get("/auth/me", response_model=UserOut)
def me(identity: Identity = Depends(get_current_identity)) -> UserOut:
    """Return the public fields of the authenticated caller."""
    return UserOut.from_identity(identity)


# ---------------------------------------------------------------------------
# Admin only
# ---------------------------------------------------------------------------


@router.get("/auth/users", response_model=list[UserOut])
def list_users(
    identity: Identity = Depends(require_role("admin")),
    service: AuthService = Depends(get_auth_service),
) -> list[UserOut]:
    return [UserOut.from_identity(i) for i in service.list_identities()]
