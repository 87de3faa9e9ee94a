"""
API response models for AuthGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request bodies are not modelled here: routes accept the raw JSON object and
hand it to AuthService, whose validate_*() functions report field errors
before any side effect.

Field names follow the wire format the frontend already consumes
(tempToken, twoFactorEnabled, otpauthURL), hence the camelCase.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from auth.models import Identity

# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    """Public user fields. Password hash and 2FA secret are never part of this."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: str

    @classmethod
    def from_identity(cls, identity: Identity) -> "UserOut":
        return cls(id=identity.id, name=identity.name, email=identity.email, role=identity.role)


class StatusResponse(BaseModel):
    """Generic success envelope: {status, message}."""

    model_config = ConfigDict(frozen=True)

    status: str = "success"
    message: str


# ---------------------------------------------------------------------------
# Login / 2FA
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    """Session issued: body carries the token, the cookie carries it too."""

    model_config = ConfigDict(frozen=True)

    status: str = "success"
    message: str = "Login successful"
    token: str
    user: UserOut


class StepUpResponse(BaseModel):
    """Password accepted but 2FA is on: no session yet, only a 5-minute temp token."""

    model_config = ConfigDict(frozen=True)

    message: str = "2FA required"
    tempToken: str
    twoFactorEnabled: bool = True


class TwoFactorSetupResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    secret: str
    otpauthURL: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class FieldErrorOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    fields: Optional[list[FieldErrorOut]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = {}
