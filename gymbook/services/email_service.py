"""Account emails: token generation and message preparation.

Messages are prepared and logged; delivery is not implemented.
"""

import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from html import escape
from typing import Any, Dict, Tuple

from loguru import logger

from gymbook.core.environment import Environment
from gymbook.utils.masking import mask_email

APP_NAME = "Gym Appointment System"
VERIFICATION_TOKEN_HOURS = 24
RESET_TOKEN_MINUTES = 60

_BUTTON_STYLE = (
    "display: inline-block; padding: 12px 24px; background-color: #4F46E5; "
    "color: white; text-decoration: none; border-radius: 6px;"
)


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str


def generate_token(num_bytes: int = 32) -> str:
    """Cryptographically random hex token."""
    return secrets.token_hex(num_bytes)


def generate_email_verification_token(
    expiry_hours: int = VERIFICATION_TOKEN_HOURS,
) -> Tuple[str, datetime]:
    """Token and expiry for confirming an email address."""
    return generate_token(), datetime.now(timezone.utc) + timedelta(hours=expiry_hours)


def generate_password_reset_token(
    expiry_minutes: int = RESET_TOKEN_MINUTES,
) -> Tuple[str, datetime]:
    """Token and expiry for a password reset link."""
    return generate_token(), datetime.now(timezone.utc) + timedelta(minutes=expiry_minutes)


def _link_email(
    to: str,
    subject: str,
    heading: str,
    full_name: str,
    intro: str,
    button: str,
    url: str,
    expiry: str,
    ignore_note: str,
) -> EmailMessage:
    name = escape(full_name or "")
    html = (
        f"<h1>{heading}</h1>\n"
        f"<p>Hi {name},</p>\n"
        f"<p>{intro} Click the link below:</p>\n"
        f'<a href="{escape(url)}" style="{_BUTTON_STYLE}">{button}</a>\n'
        "<p>Or copy and paste this link in your browser:</p>\n"
        f"<p>{escape(url)}</p>\n"
        f"<p>This link will expire in {expiry}.</p>\n"
        f"<p>{ignore_note}</p>\n"
    )
    text = (
        f"{heading}\n\n"
        f"Hi {full_name},\n\n"
        f"{intro} Visit:\n{url}\n\n"
        f"This link will expire in {expiry}.\n\n"
        f"{ignore_note}\n"
    )
    return EmailMessage(to=to, subject=subject, html=html, text=text)


def prepare_verification_email(user: Any, token: str, frontend_url: str) -> EmailMessage:
    """Build the email-verification message for a newly registered user."""
    return _link_email(
        to=user.email,
        subject=f"Verify Your Email - {APP_NAME}",
        heading=f"Welcome to {APP_NAME}!",
        full_name=user.full_name,
        intro="Thank you for registering. Please verify your email address.",
        button="Verify Email",
        url=f"{frontend_url}/verify-email?token={token}",
        expiry=f"{VERIFICATION_TOKEN_HOURS} hours",
        ignore_note="If you didn't create an account, please ignore this email.",
    )


def prepare_password_reset_email(user: Any, token: str, frontend_url: str) -> EmailMessage:
    """Build the password-reset message."""
    return _link_email(
        to=user.email,
        subject=f"Password Reset Request - {APP_NAME}",
        heading="Password Reset Request",
        full_name=user.full_name,
        intro="You requested to reset your password.",
        button="Reset Password",
        url=f"{frontend_url}/reset-password?token={token}",
        expiry="1 hour",
        ignore_note=(
            "If you didn't request a password reset, please ignore this email "
            "and ensure your account is secure."
        ),
    )


class EmailService:
    """Prepares account emails and hands them to the (logging) transport."""

    def __init__(self, frontend_url: str, environment: str = Environment.DEVELOPMENT):
        self.frontend_url = frontend_url.rstrip("/")
        self.environment = environment

    def verification_email(self, user: Any, token: str) -> EmailMessage:
        return prepare_verification_email(user, token, self.frontend_url)

    def password_reset_email(self, user: Any, token: str) -> EmailMessage:
        return prepare_password_reset_email(user, token, self.frontend_url)

    async def send(self, message: EmailMessage) -> Dict[str, Any]:
        """
        Send a message. Only logs; in development the full text is logged.

        Returns:
            Dict with ``success`` and ``message_id``
        """
        if self.environment == Environment.DEVELOPMENT:
            logger.info(
                f"\n========== EMAIL ==========\n"
                f"To: {message.to}\nSubject: {message.subject}\nText: {message.text}"
                f"===========================",
            )
        else:
            logger.info(f"Email prepared for {mask_email(message.to)}: {message.subject}")
        return {"success": True, "message_id": f"dev-{int(time.time() * 1000)}"}
