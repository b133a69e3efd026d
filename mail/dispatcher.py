"""
mail/dispatcher.py -- Password reset email delivery.

EmailDispatcher is the contract PasswordRecoveryService depends on.
SmtpEmailDispatcher implements it with smtplib, run in the default executor
so the blocking SMTP conversation never stalls the event loop.

Any transport failure is re-raised as EmailDeliveryError. The recovery
service decides what to do about it (it rolls back the reset token); this
module only reports.
"""

from __future__ import annotations

import asyncio
import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol
from urllib.parse import urlencode

logger = logging.getLogger("storefront.mail")

RESET_SUBJECT = "Password reset"


class EmailDeliveryError(Exception):
    """The message could not be handed to the mail server."""


class EmailDispatcher(Protocol):
    async def send_password_reset_email(self, to_address: str, token: str, frontend_base_url: str) -> None: ...


def build_reset_link(token: str, frontend_base_url: str) -> str:
    """Return <frontend>/reset-password?token=<token>."""
    return f"{frontend_base_url.rstrip('/')}/reset-password?{urlencode({'token': token})}"


def build_reset_message(to_address: str, from_address: str, token: str, frontend_base_url: str) -> EmailMessage:
    """Render the reset email as a plain-text message with an HTML alternative."""
    link = build_reset_link(token, frontend_base_url)
    msg = EmailMessage()
    msg["Subject"] = RESET_SUBJECT
    msg["From"] = from_address
    msg["To"] = to_address
    msg.set_content(
        "You asked to reset your password.\n\n"
        f"Open this link to choose a new one:\n{link}\n\n"
        "The link expires in 15 minutes. If you did not ask for this, ignore this email.\n"
    )
    safe_link = html.escape(link, quote=True)
    msg.add_alternative(
        f"""
        <div style="font-family: Arial, sans-serif; padding: 20px;">
            <h2>Password reset</h2>
            <p>You asked to reset your password.</p>
            <p>
                <a href="{safe_link}"
                   style="display: inline-block; padding: 12px 24px; background-color: #C92A0E;
                          color: white; text-decoration: none; border-radius: 6px; margin: 20px 0;">
                    Reset password
                </a>
            </p>
            <p style="color: #666; font-size: 12px;">This link expires in 15 minutes.</p>
        </div>
        """,
        subtype="html",
    )
    return msg


class SmtpEmailDispatcher:
    """Send reset emails through an SMTP relay.

    Usage:
        dispatcher = SmtpEmailDispatcher(host="smtp.gmail.com", port=587,
                                         username=..., password=..., from_address=...)
        await dispatcher.send_password_reset_email("a@x.com", token, "https://shop.example")
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        from_address: str = "no-reply@localhost",
        starttls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.starttls = starttls
        self.timeout = timeout

    async def send_password_reset_email(self, to_address: str, token: str, frontend_base_url: str) -> None:
        if not self.host:
            raise EmailDeliveryError("SMTP_HOST is not configured")
        msg = build_reset_message(to_address, self.from_address, token, frontend_base_url)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Reset email to %s failed: %s", to_address, exc)
            raise EmailDeliveryError(str(exc)) from exc
        logger.info("Reset email sent to %s", to_address)

    def _send_sync(self, msg: EmailMessage) -> None:
        """Synchronous SMTP conversation (runs in the executor)."""
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.starttls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)
