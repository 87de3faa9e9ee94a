"""
auth/totp.py -- Time-based one-time passwords (RFC 6238) via pyotp.

Secrets are 32-character base32 strings from pyotp.random_base32() (160 bits).
Codes are 6 digits over 30-second steps, which is what every mainstream
authenticator app expects from an otpauth:// URI with no extra parameters.

verify_code() accepts the current step plus `window` steps either side. A
code stays reusable for as long as it falls inside that window; no record of
used codes is kept.
"""

from __future__ import annotations

from datetime import datetime

import pyotp

from auth.models import TwoFactorSetup

DEFAULT_WINDOW = 1


class TotpService:
    """Generates TOTP secrets and checks codes against them.

    issuer is shown by the authenticator app next to the account label.
    """

    def __init__(self, issuer: str) -> None:
        self.issuer = issuer

    def generate_secret(self, account: str) -> TwoFactorSetup:
        secret = pyotp.random_base32()
        url = pyotp.TOTP(secret).provisioning_uri(name=account, issuer_name=self.issuer)
        return TwoFactorSetup(secret=secret, otpauth_url=url)

    def verify_code(
        self,
        secret: str,
        code: str,
        window: int = DEFAULT_WINDOW,
        for_time: datetime | None = None,
    ) -> bool:
        if not secret or not code:
            return False
        totp = pyotp.TOTP(secret)
        if for_time is None:
            return totp.verify(code, valid_window=window)
        return totp.verify(code, for_time=for_time, valid_window=window)
