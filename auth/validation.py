"""
auth/validation.py -- Input-shape checks run at the start of every auth flow.

Each validate_*() function takes the raw request payload (a dict, possibly
with missing or wrongly typed values) and returns a ValidationResult. Nothing
here touches the store, so a failing result is always reported before any
side effect happens. AuthService turns a failing result into ValidationError.

Rules:
  name      2..100 characters after stripping
  email     one "@", a dotted domain, no whitespace; normalized to lowercase
  password  8..72 bytes UTF-8 (bcrypt rejects longer inputs)
  code      exactly 6 digits
  token     non-empty string

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
CODE_PATTERN = re.compile(r"^\d{6}$")

NAME_MIN, NAME_MAX = 2, 100
PASSWORD_MIN, PASSWORD_MAX_BYTES = 8, 72
EMAIL_MAX = 254


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


@dataclass
class ValidationResult:
    """ok is True iff errors is empty. data holds the cleaned values."""

    data: dict = field(default_factory=dict)
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Field checks -- each appends to result.errors or stores a cleaned value
# ---------------------------------------------------------------------------


def _string(payload: dict, name: str, result: ValidationResult) -> str | None:
    value = payload.get(name)
    if value is None:
        result.errors.append(FieldError(name, "Field required."))
        return None
    if not isinstance(value, str):
        result.errors.append(FieldError(name, "Must be a string."))
        return None
    return value


def _check_name(payload: dict, result: ValidationResult) -> None:
    value = _string(payload, "name", result)
    if value is None:
        return
    value = value.strip()
    if not NAME_MIN <= len(value) <= NAME_MAX:
        result.errors.append(FieldError("name", f"Must be between {NAME_MIN} and {NAME_MAX} characters."))
        return
    result.data["name"] = value


def _check_email(payload: dict, result: ValidationResult) -> None:
    value = _string(payload, "email", result)
    if value is None:
        return
    value = normalize_email(value)
    if len(value) > EMAIL_MAX or not EMAIL_PATTERN.match(value):
        result.errors.append(FieldError("email", "Invalid email address."))
        return
    result.data["email"] = value


def _check_password(payload: dict, result: ValidationResult) -> None:
    value = _string(payload, "password", result)
    if value is None:
        return
    if len(value) < PASSWORD_MIN:
        result.errors.append(FieldError("password", f"Must be at least {PASSWORD_MIN} characters."))
        return
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        result.errors.append(FieldError("password", f"Must be at most {PASSWORD_MAX_BYTES} bytes."))
        return
    result.data["password"] = value


def _check_token(payload: dict, name: str, result: ValidationResult) -> None:
    value = _string(payload, name, result)
    if value is None:
        return
    value = value.strip()
    if not value:
        result.errors.append(FieldError(name, "Must not be empty."))
        return
    result.data[name] = value


def _check_code(payload: dict, result: ValidationResult) -> None:
    value = _string(payload, "code", result)
    if value is None:
        return
    value = value.strip()
    if not CODE_PATTERN.match(value):
        result.errors.append(FieldError("code", "Must be exactly 6 digits."))
        return
    result.data["code"] = value


# ---------------------------------------------------------------------------
# Public validators -- one per flow
# ---------------------------------------------------------------------------


def validate_signup(payload: Any) -> ValidationResult:
    result = ValidationResult()
    payload = payload if isinstance(payload, dict) else {}
    _check_name(payload, result)
    _check_email(payload, result)
    _check_password(payload, result)
    return result


def validate_login(payload: Any) -> ValidationResult:
    result = ValidationResult()
    payload = payload if isinstance(payload, dict) else {}
    _check_email(payload, result)
    _check_password(payload, result)
    return result


def validate_verify_email(payload: Any) -> ValidationResult:
    result = ValidationResult()
    payload = payload if isinstance(payload, dict) else {}
    _check_token(payload, "token", result)
    return result


def validate_code(payload: Any) -> ValidationResult:
    """Used by the 2FA confirm step (authenticated caller supplies only a code)."""
    result = ValidationResult()
    payload = payload if isinstance(payload, dict) else {}
    _check_code(payload, result)
    return result


def validate_step_up(payload: Any) -> ValidationResult:
    """Used by the 2FA login step-up: the temp token from login plus a code."""
    result = ValidationResult()
    payload = payload if isinstance(payload, dict) else {}
    _check_token(payload, "tempToken", result)
    _check_code(payload, result)
    return result
