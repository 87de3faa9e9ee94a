"""
auth/errors.py -- Domain exceptions raised by the auth layer.

Every exception carries an HTTP status_code, a stable machine-readable code,
and a user-visible message. api/main.py renders all of them in the same error
envelope, so the auth layer never imports FastAPI to express a failure.

Message policy:
  Credential and token failures use deliberately generic messages. The caller
  must not be able to tell "no such user" from "wrong password", or "expired"
  from "signed for an old password".
  Precondition failures ("2FA already enabled") are specific.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for auth failures that map to an HTTP response."""

    status_code: int = 400
    code: str = "bad_request"
    message: str = "Request failed."

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        errors: list | None = None,
    ) -> None:
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        # Structured field errors (validation only)
        self.errors = errors or []
        super().__init__(self.message)


class ValidationError(AuthError):
    status_code = 400
    code = "validation_error"
    message = "Validation failed."


class DuplicateEmail(AuthError):
    status_code = 400
    code = "duplicate_email"
    message = "Email is already registered."


class InvalidToken(AuthError):
    """Malformed, expired, wrongly signed, or wrong-purpose token.

    400 in the email-verification flow, 401 in the 2FA step-up flow.
    """

    status_code = 400
    code = "invalid_token"
    message = "Token is invalid, or token is expired."


class InvalidCredentials(AuthError):
    status_code = 401
    code = "invalid_credentials"
    message = "Invalid email or password."


class EmailNotVerified(AuthError):
    status_code = 401
    code = "email_not_verified"
    message = "Please verify your email to login."


class InvalidCode(AuthError):
    status_code = 401
    code = "invalid_code"
    message = "Invalid 2FA code."


class AlreadyVerified(AuthError):
    status_code = 400
    code = "already_verified"
    message = "Email is already verified."


class AlreadyEnabled(AuthError):
    status_code = 400
    code = "already_enabled"
    message = "2FA already enabled."


class NotEnabled(AuthError):
    status_code = 400
    code = "not_enabled"
    message = "2FA not enabled."


class NotSetup(AuthError):
    status_code = 404
    code = "not_setup"
    message = "2FA has not been set up."


class UserNotFound(AuthError):
    status_code = 404
    code = "not_found"
    message = "User not found."


class Unauthorized(AuthError):
    status_code = 401
    code = "unauthorized"
    message = "You are not logged in. Please log in to get access."


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"
    message = "You do not have permission to perform this action."


class NotificationError(AuthError):
    """Outbound email could not be delivered. Surfaces as a generic 500."""

    status_code = 500
    code = "internal_error"
    message = "An unexpected error occurred."
