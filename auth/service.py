"""
auth/service.py -- The authentication and 2FA state machine.

All account state lives in the User row plus tokens held by the client. There
is no server-side session table: a request is authenticated by verifying its
session JWT and re-reading the user it names.

Flows (each validates input shape first, before any read or write):

  signup        create unverified user -> email a verification link
  verify_email  decode -> load user -> verify with SECRET_KEY + current hash
                -> mark verified (once)
  login         password check -> verified? -> 2FA on: step-up token only
                                               2FA off: session token
  verify_2fa    step-up token + code -> session token
  setup_2fa     store a fresh secret, 2FA stays off until confirmed
  confirm_2fa   code matches pending secret -> 2FA on
  disable_2fa   2FA off, secret cleared
  authenticate  session token -> Identity (the access gate)
  authorize     Identity + allowed roles -> Identity or Forbidden

Every failure is an AuthError subclass (auth/errors.py). Persistence and
email errors are not caught here; they surface as a generic 500.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    AlreadyEnabled,
    AlreadyVerified,
    DuplicateEmail,
    EmailNotVerified,
    Forbidden,
    InvalidCode,
    InvalidCredentials,
    InvalidToken,
    NotEnabled,
    NotSetup,
    Unauthorized,
    UserNotFound,
    ValidationError,
)
from auth.models import Identity, LoginResult, TwoFactorSetup, User
from auth.notify import Notifier, redact_email, verification_email, verification_url
from auth.tokens import (
    PURPOSE_SESSION,
    PURPOSE_STEP_UP,
    PURPOSE_VERIFY_EMAIL,
    TokenService,
    burn_password_check,
    hash_password,
    verify_password,
)
from auth.totp import TotpService
from auth.validation import (
    ValidationResult,
    validate_code,
    validate_login,
    validate_signup,
    validate_step_up,
    validate_verify_email,
)

if TYPE_CHECKING:
    from auth.store import UserStore
    from core.config import Settings

logger = logging.getLogger("authgate.auth")


def _require(result: ValidationResult) -> dict:
    if not result.ok:
        raise ValidationError(errors=[e.to_dict() for e in result.errors])
    return result.data


class AuthService:
    """Orchestrates every auth flow over a UserStore.

    Collaborators are injected so tests can swap the notifier (and, if needed,
    the store) without patching module globals.
    """

    def __init__(
        self,
        store: UserStore,
        tokens: TokenService,
        totp: TotpService,
        notifier: Notifier,
        settings: Settings,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.totp = totp
        self.notifier = notifier
        self.settings = settings

    # ------------------------------------------------------------------
    # Signup / email verification
    # ------------------------------------------------------------------

    def signup(self, payload: Any) -> User:
        """Create an unverified account and email its verification link.

        Never logs the user in. The verification token is not stored anywhere;
        only the emailed link carries it.
        """
        data = _require(validate_signup(payload))

        if self.store.email_exists(data["email"]):
            raise DuplicateEmail()

        hashed = hash_password(data["password"])
        try:
            user_id = self.store.create_user(User(name=data["name"], email=data["email"], hashed_password=hashed))
        except IntegrityError as exc:
            # Lost a race with a concurrent signup for the same address
            raise DuplicateEmail() from exc

        token = self.tokens.issue_verification(user_id, hashed)
        subject, html = verification_email(verification_url(self.settings.frontend_url, token))
        self.notifier.send(data["email"], subject, html)

        logger.info("Signup user_id=%s email=%s; verification sent", user_id, redact_email(data["email"]))
        return self.store.get_by_id(user_id)

    def verify_email(self, payload: Any) -> User:
        """Mark the account verified if the token is valid for its CURRENT password hash."""
        token = _require(validate_verify_email(payload))["token"]

        claims = self.tokens.decode_unverified(token)
        if claims is None:
            raise InvalidToken()
        user = self.store.get_by_id(claims["user_id"], include_password=True)
        if user is None:
            raise InvalidToken()

        self.tokens.verify(token, self.tokens.verification_key(user.hashed_password), PURPOSE_VERIFY_EMAIL)

        if user.is_email_verified:
            raise AlreadyVerified()

        self.store.update_user(user.id, is_email_verified=True)
        logger.info("Email verified user_id=%s", user.id)
        user.is_email_verified = True
        user.hashed_password = None
        return user

    # ------------------------------------------------------------------
    # Login / 2FA step-up
    # ------------------------------------------------------------------

    def login(self, payload: Any) -> LoginResult:
        """Check credentials; issue a session token, or a step-up token when 2FA is on.

        Unknown email and wrong password raise the same InvalidCredentials
        after the same amount of bcrypt work [C1].
        """
        data = _require(validate_login(payload))

        user = self.store.get_by_email(data["email"], include_password=True)
        if user is None:
            burn_password_check(data["password"])
            logger.info("Login failed: unknown email %s", redact_email(data["email"]))
            raise InvalidCredentials()
        if not verify_password(data["password"], user.hashed_password):
            logger.info("Login failed: bad password user_id=%s", user.id)
            raise InvalidCredentials()

        if not user.is_email_verified:
            raise EmailNotVerified()

        if user.two_factor_enabled:
            logger.info("Login step-up required user_id=%s", user.id)
            return LoginResult(temp_token=self.tokens.issue_step_up(user.id), two_factor_required=True)

        logger.info("Login succeeded user_id=%s", user.id)
        return LoginResult(token=self.tokens.issue_session(user.id), identity=Identity.from_user(user))

    def verify_2fa(self, payload: Any) -> LoginResult:
        """Complete a login that stopped at the 2FA step-up."""
        data = _require(validate_step_up(payload))

        try:
            claims = self.tokens.verify(data["tempToken"], self.tokens.primary_key, PURPOSE_STEP_UP)
        except InvalidToken as exc:
            raise InvalidToken("Invalid or expired token.", status_code=401) from exc

        user = self.store.get_by_id(claims["user_id"], include_secret=True)
        if user is None or not user.two_factor_secret:
            raise InvalidToken("Invalid token.")

        if not self.totp.verify_code(user.two_factor_secret, data["code"]):
            logger.info("2FA step-up rejected user_id=%s", user.id)
            raise InvalidCode()

        logger.info("Login succeeded after 2FA user_id=%s", user.id)
        return LoginResult(token=self.tokens.issue_session(user.id), identity=Identity.from_user(user))

    # ------------------------------------------------------------------
    # 2FA enrollment (authenticated)
    # ------------------------------------------------------------------

    def setup_2fa(self, identity: Identity) -> TwoFactorSetup:
        """Generate and store a pending secret. 2FA stays off until confirm_2fa()."""
        user = self.store.get_by_id(identity.id)
        if user is None:
            raise UserNotFound()
        if user.two_factor_enabled:
            raise AlreadyEnabled()

        setup = self.totp.generate_secret(user.email)
        self.store.update_user(user.id, two_factor_secret=setup.secret)
        logger.info("2FA setup started user_id=%s", user.id)
        return setup

    def confirm_2fa(self, identity: Identity, payload: Any) -> None:
        """Turn 2FA on once the caller proves their authenticator holds the pending secret."""
        code = _require(validate_code(payload))["code"]

        user = self.store.get_by_id(identity.id, include_secret=True)
        if user is None:
            raise UserNotFound()
        if user.two_factor_enabled:
            raise AlreadyEnabled()
        if not user.two_factor_secret:
            raise NotSetup()

        if not self.totp.verify_code(user.two_factor_secret, code):
            raise InvalidCode()

        self.store.update_user(user.id, two_factor_enabled=True)
        logger.info("2FA enabled user_id=%s", user.id)

    def disable_2fa(self, identity: Identity) -> None:
        user = self.store.get_by_id(identity.id)
        if user is None:
            raise UserNotFound()
        if not user.two_factor_enabled:
            raise NotEnabled()

        self.store.update_user(user.id, two_factor_enabled=False, two_factor_secret=None)
        logger.info("2FA disabled user_id=%s", user.id)

    # ------------------------------------------------------------------
    # Access gate
    # ------------------------------------------------------------------

    def authenticate(self, token: str | None) -> Identity:
        """Resolve a session token to the Identity of a user that still exists."""
        if not token:
            raise Unauthorized()
        try:
            claims = self.tokens.verify(token, self.tokens.primary_key, PURPOSE_SESSION)
        except InvalidToken as exc:
            raise Unauthorized("Invalid token.") from exc

        user = self.store.get_by_id(claims["user_id"])
        if user is None:
            raise Unauthorized("User no longer exists.")
        return Identity.from_user(user)

    @staticmethod
    def authorize(identity: Identity, allowed_roles: Iterable[str]) -> Identity:
        if identity.role not in set(allowed_roles):
            raise Forbidden()
        return identity

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def list_identities(self) -> list[Identity]:
        return [Identity.from_user(u) for u in self.store.list_users()]
