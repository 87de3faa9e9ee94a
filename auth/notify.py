"""
auth/notify.py -- Outbound email for the signup verification flow.

Notifier is the interface AuthService depends on: one send() call with a
recipient, subject and HTML body. SmtpNotifier is the production
implementation. Tests substitute a recording fake.

Delivery failures raise NotificationError. AuthService does not catch it, so
the request fails with a generic 500 and nothing is retried.

When SMTP is not configured (SMTP_HOST empty) the message is logged rather
than sent, so local development works without a mail server. The body (which
carries the verification link) goes to DEBUG only.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Protocol

from auth.errors import NotificationError

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("authgate.auth.notify")

VERIFY_SUBJECT = "Verify Your Email"


class Notifier(Protocol):
    def send(self, to: str, subject: str, html: str) -> None: ...


def redact_email(email: str) -> str:
    """ab***@domain -- enough to correlate log lines without storing the address."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def verification_url(frontend_url: str, token: str) -> str:
    return f"{frontend_url.rstrip('/')}/verify-email?token={token}"


def verification_email(url: str) -> tuple[str, str]:
    """Return (subject, html) for the signup verification message."""
    html = f'Please click <a href="{url}">here</a> to verify your email.'
    return VERIFY_SUBJECT, html


class SmtpNotifier:
    """Send email over SMTP with STARTTLS (smtp_use_tls) or implicit TLS."""

    def __init__(self, settings: Settings) -> None:
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.use_tls = settings.smtp_use_tls
        self.from_email = settings.email_from or settings.smtp_user
        self.from_name = settings.app_name

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.from_email)

    def send(self, to: str, subject: str, html: str) -> None:
        if not self.is_configured:
            # The body carries a live verification link; keep it out of INFO logs
            logger.info("SMTP not configured; email to %s not sent (subject=%r)", redact_email(to), subject)
            logger.debug("Unsent email body: %s", html)
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to
        msg.attach(MIMEText(html, "html"))

        context = ssl.create_default_context()
        try:
            if self.use_tls:
                with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.user and self.password:
                        server.login(self.user, self.password)
                    server.sendmail(self.from_email, to, msg.as_string())
            else:
                with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=30) as server:
                    if self.user and self.password:
                        server.login(self.user, self.password)
                    server.sendmail(self.from_email, to, msg.as_string())
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error("Email to %s failed: %s: %s", redact_email(to), type(exc).__name__, exc)
            raise NotificationError() from exc

        logger.info("Email sent to %s (subject=%r)", redact_email(to), subject)
