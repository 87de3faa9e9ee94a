"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). The store maps rows to
User; the service maps User to Identity before anything leaves the auth layer.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account.

    hashed_password and two_factor_secret are None on default reads from the
    store. Callers that need them (login, verify-email, 2FA checks) ask for them
    explicitly with include_password / include_secret.

    two_factor_secret may be set while two_factor_enabled is False: that is an
    enrollment waiting for its confirmation code. The reverse (enabled with no
    secret) never happens.
    """

    name: str
    email: str  # normalized: stripped + lowercased
    role: str = "user"  # "user" | "admin"
    id: int | None = None
    hashed_password: str | None = None
    is_email_verified: bool = False
    two_factor_enabled: bool = False
    two_factor_secret: str | None = None  # base32
    created_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as resolved by the access gate.

    Carries only public fields. Route handlers receive this value from the
    gate dependency; they never see the password hash or the TOTP secret.
    """

    id: int
    name: str
    email: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> Identity:
        return cls(id=user.id, name=user.name, email=user.email, role=user.role)


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a password login or a completed 2FA step-up.

    Exactly one of two shapes:
      - session issued: token + identity set, two_factor_required False
      - step-up pending: temp_token set, two_factor_required True
    """

    token: str | None = None
    identity: Identity | None = None
    temp_token: str | None = None
    two_factor_required: bool = False


@dataclass(frozen=True)
class TwoFactorSetup:
    """A freshly generated TOTP secret and its provisioning URI (for QR codes)."""

    secret: str
    otpauth_url: str
