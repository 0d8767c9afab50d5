"""
auth/mail.py -- Best-effort outbound email for the credential flows.

The flows depend on exactly one capability: MailDispatcher.send_in_background()
-- queue a message and return immediately. Delivery happens on a small worker
thread pool; any failure is logged in the worker and never reaches the request
that triggered it. No retries.

Transport selection (first configured wins):
  1. Resend HTTPS API  -- RESEND_API_KEY set. Works on hosts that block SMTP.
  2. SMTP              -- SMTP_HOST and a from-address set.
  3. Log only          -- dev mode; the message is logged (subject + recipient
                          + body preview) so links can be copied from the log.

Recipient addresses are redacted in log lines.

The *_email() helpers at the bottom render the subject/HTML for each flow.
"""

from __future__ import annotations

import html
import logging
import smtplib
import ssl
from concurrent.futures import Future, ThreadPoolExecutor
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import requests

from core.config import Settings

logger = logging.getLogger("listing.auth.mail")

RESEND_API_URL = "https://api.resend.com/emails"


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class MailDispatcher:
    """Sends transactional email on a background thread pool.

    Lifecycle: created in the FastAPI lifespan, shut down on exit via close().
    """

    def __init__(self, settings: Settings, max_workers: int = 2) -> None:
        self.settings = settings
        self._session = requests.Session()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="mail")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def uses_resend(self) -> bool:
        return bool(self.settings.resend_api_key)

    @property
    def uses_smtp(self) -> bool:
        return bool(self.settings.smtp_host and self._smtp_from_email)

    @property
    def is_configured(self) -> bool:
        return self.uses_resend or self.uses_smtp

    @property
    def _smtp_from_email(self) -> str:
        return self.settings.smtp_from_email or self.settings.smtp_user

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def send_in_background(self, to: str, subject: str, html_body: str) -> Future:
        """Queue a message and return immediately.

        The returned Future resolves to True/False (delivered or not) and never
        raises; callers are free to ignore it.
        """
        return self._executor.submit(self._deliver, to, subject, html_body)

    def close(self) -> None:
        """Wait for queued messages, then stop the worker threads."""
        self._executor.shutdown(wait=True)
        self._session.close()

    # ------------------------------------------------------------------
    # Transports
    # ------------------------------------------------------------------

    def _deliver(self, to: str, subject: str, html_body: str) -> bool:
        try:
            if self.uses_resend:
                self._send_resend(to, subject, html_body)
            elif self.uses_smtp:
                self._send_smtp(to, subject, html_body)
            else:
                logger.info(
                    "Email not configured; logging instead of sending: to=%s subject=%r body=%s",
                    redact_email(to),
                    subject,
                    html_body[:500],
                )
                return True
        except (requests.RequestException, smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error(
                "Background email failed: to=%s subject=%r error=%s: %s",
                redact_email(to),
                subject,
                type(exc).__name__,
                exc,
            )
            return False
        logger.info("Email sent: to=%s subject=%r", redact_email(to), subject)
        return True

    def _send_resend(self, to: str, subject: str, html_body: str) -> None:
        resp = self._session.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {self.settings.resend_api_key}"},
            json={
                "from": f'"{self.settings.mail_from_name}" <{self.settings.resend_from_email}>',
                "to": [to],
                "subject": subject,
                "html": html_body,
            },
            timeout=15,
        )
        resp.raise_for_status()

    def _send_smtp(self, to: str, subject: str, html_body: str) -> None:
        from_email = self._smtp_from_email
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f'"{self.settings.mail_from_name}" <{from_email}>'
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        s = self.settings
        if s.smtp_use_tls:
            with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=20) as server:
                server.starttls(context=context)
                if s.smtp_user and s.smtp_password:
                    server.login(s.smtp_user, s.smtp_password)
                server.sendmail(from_email, to, msg.as_string())
        else:
            with smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, context=context, timeout=20) as server:
                if s.smtp_user and s.smtp_password:
                    server.login(s.smtp_user, s.smtp_password)
                server.sendmail(from_email, to, msg.as_string())


# ---------------------------------------------------------------------------
# Message templates -- each returns (subject, html)
# ---------------------------------------------------------------------------

_WRAPPER = """<!DOCTYPE html>
<html>
<body style="font-family: system-ui, sans-serif; line-height: 1.6; max-width: 560px; margin: 0 auto; padding: 20px;">
{content}
</body>
</html>"""


def verification_email(name: str, url: str) -> tuple[str, str]:
    link = html.escape(url)
    content = (
        f"<h1>Welcome to Dynamic Listing, {html.escape(name)}!</h1>\n"
        "<p>Please click the link below to verify your email address:</p>\n"
        f'<p><a href="{link}">{link}</a></p>\n'
        "<p>If you did not sign up for an account, please ignore this email.</p>"
    )
    return "Verify your email address", _WRAPPER.format(content=content)


def otp_email(code: str, minutes: int) -> tuple[str, str]:
    content = (
        "<p>Your Dynamic Listing sign-in code is:</p>\n"
        f'<p style="font-size: 28px; font-weight: 600; letter-spacing: 6px;">{html.escape(code)}</p>\n'
        f"<p>This code expires in {minutes} minutes.</p>\n"
        "<p>If you did not request this code, please ignore this email.</p>"
    )
    return "Your login code", _WRAPPER.format(content=content)


def password_reset_email(name: str, url: str) -> tuple[str, str]:
    link = html.escape(url)
    content = (
        f"<p>Hi {html.escape(name)},</p>\n"
        "<p>We received a request to reset your password.</p>\n"
        f'<p><a href="{link}">Reset your password</a></p>\n'
        f"<p>Or copy this link: {link}</p>\n"
        "<p>This link expires in 1 hour.</p>\n"
        "<p>If you did not request a password reset, please ignore this email.</p>"
    )
    return "Reset your password", _WRAPPER.format(content=content)


def admin_invitation_email(name: str, url: str, resent: bool = False) -> tuple[str, str]:
    link = html.escape(url)
    intro = (
        "A new invitation link has been generated for your admin account."
        if resent
        else "You have been invited to join Dynamic Listing as an administrator."
    )
    content = (
        f"<p>Hi {html.escape(name)},</p>\n"
        f"<p>{intro}</p>\n"
        f'<p><a href="{link}">Set your password</a></p>\n'
        f"<p>Or copy this link: {link}</p>\n"
        "<p>This link expires in 7 days.</p>\n"
        "<p>If you did not expect this invitation, please ignore this email.</p>"
    )
    subject = "Set Your Password - Dynamic Listing Admin" if resent else "You're Invited to Dynamic Listing Admin"
    return subject, _WRAPPER.format(content=content)
