"""
auth/tokens.py -- JWT issuance/verification, password hashing, and cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Three token classes share one shape
       ({sub, user_id, purpose, iat, exp}) and differ in TTL, purpose and key:

         purpose        TTL                       signing key
         session        settings.token_expire_*   SECRET_KEY
         2fa            5 minutes                 SECRET_KEY
         verify_email   1 day                     SECRET_KEY + password hash

       The purpose claim is checked on every verify(), so a step-up token can
       never be replayed as a session token (or the other way round).

  Composite verification key: an email-verification token is signed with
       SECRET_KEY concatenated with the user's password hash at issue time.
       Changing the password changes the key, so every outstanding
       verification token for that account dies without any revocation list.
       The key depends on data that is not in the token, which is why
       decode_unverified() exists: read the user id, load the user, rebuild
       the key, then verify().

  Passwords: bcrypt directly (no passlib wrapper). _DUMMY_HASH enables timing
       equalization in AuthService.login() so response time does not reveal
       whether an email is registered [C1].

TokenService takes its Settings explicitly. Nothing in this module reads
configuration at import time.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import InvalidToken

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("authgate.auth.tokens")

ALGORITHM = "HS256"

SESSION_COOKIE = "jwt"

PURPOSE_SESSION = "session"
PURPOSE_STEP_UP = "2fa"
PURPOSE_VERIFY_EMAIL = "verify_email"

STEP_UP_TTL = timedelta(minutes=5)
VERIFY_EMAIL_TTL = timedelta(days=1)

# Largest value a SQLite INTEGER column can hold
MAX_USER_ID = 2**63 - 1


def _is_user_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= MAX_USER_ID


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt refuses inputs longer than 72 bytes; auth/validation.py caps
    passwords at that length before they get here.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("authgate_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt verification on a throwaway hash.

    Called when the account does not exist so that the unknown-email path
    costs the same as the wrong-password path.
    """
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


class TokenService:
    """Issues and verifies the three signed token classes.

    Usage:
        tokens = TokenService(settings)
        token = tokens.issue_session(user.id)
        claims = tokens.verify(token, tokens.primary_key, purpose=PURPOSE_SESSION)
    """

    def __init__(self, settings: Settings) -> None:
        self._secret = settings.secret_key
        self._session_ttl = timedelta(seconds=settings.token_expire_seconds)

    @property
    def primary_key(self) -> str:
        return self._secret

    def verification_key(self, password_hash: str) -> str:
        """Composite key for email-verification tokens: SECRET_KEY + password hash."""
        return self._secret + password_hash

    def _encode(self, user_id: int, purpose: str, key: str, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "user_id": user_id,
            "purpose": purpose,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, key, algorithm=ALGORITHM)

    def issue_session(self, user_id: int) -> str:
        return self._encode(user_id, PURPOSE_SESSION, self._secret, self._session_ttl)

    def issue_step_up(self, user_id: int) -> str:
        """Short-lived proof that the password check passed; only good for /2fa/verify."""
        return self._encode(user_id, PURPOSE_STEP_UP, self._secret, STEP_UP_TTL)

    def issue_verification(self, user_id: int, password_hash: str) -> str:
        return self._encode(user_id, PURPOSE_VERIFY_EMAIL, self.verification_key(password_hash), VERIFY_EMAIL_TTL)

    def verify(self, token: str, key: str, purpose: str) -> dict:
        """Verify signature, expiry and purpose in one step. Raises InvalidToken on any failure.

        jose checks the signature and exp together inside jwt.decode(); a
        token that fails either check never yields claims.
        """
        try:
            claims = jwt.decode(token, key, algorithms=[ALGORITHM])
        except JWTError as exc:
            logger.debug("Token rejected: %s", type(exc).__name__)
            raise InvalidToken() from exc
        if claims.get("purpose") != purpose or not _is_user_id(claims.get("user_id")):
            raise InvalidToken()
        return claims

    @staticmethod
    def decode_unverified(token: str) -> dict | None:
        """Return the claims WITHOUT checking the signature, or None if unreadable.

        Only for locating the user whose password hash completes the
        verification key. Never trust anything returned here until verify()
        has accepted the same token.
        """
        try:
            claims = jwt.get_unverified_claims(token)
        except JWTError:
            return None
        if not isinstance(claims, dict) or not _is_user_id(claims.get("user_id")):
            return None
        return claims


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, settings: Settings) -> None:
    """Write the session JWT as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    secure: only sent over HTTPS in production.
    expires: settings.cookie_expire_days from now.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.cookie_expire_seconds,
        expires=datetime.now(timezone.utc) + timedelta(days=settings.cookie_expire_days),
    )


def clear_auth_cookie(response, settings: Settings) -> None:
    """Overwrite the session cookie with an already-expired empty value."""
    response.delete_cookie(
        SESSION_COOKIE,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
    )
