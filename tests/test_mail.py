"""
tests/test_mail.py -- mail/dispatcher.py rendering and SMTP error handling.

No network: smtplib.SMTP is patched wherever a send is attempted.
"""

from __future__ import annotations

import asyncio
import smtplib
from unittest.mock import MagicMock, patch

import pytest

from mail.dispatcher import EmailDeliveryError, SmtpEmailDispatcher, build_reset_link, build_reset_message

TOKEN = "ab" * 32


def test_reset_link() -> None:
    assert build_reset_link(TOKEN, "https://shop.example/") == f"https://shop.example/reset-password?token={TOKEN}"


def test_reset_message_has_text_and_html_parts() -> None:
    msg = build_reset_message("a@x.com", "no-reply@shop.example", TOKEN, "https://shop.example")
    assert msg["Subject"] == "Password reset"
    assert msg["To"] == "a@x.com"
    assert msg["From"] == "no-reply@shop.example"
    text = msg.get_body(preferencelist=("plain",)).get_content()
    html = msg.get_body(preferencelist=("html",)).get_content()
    link = f"https://shop.example/reset-password?token={TOKEN}"
    assert link in text and link in html
    assert "15 minutes" in text and "15 minutes" in html


def test_missing_host_is_a_delivery_error() -> None:
    with pytest.raises(EmailDeliveryError):
        asyncio.run(SmtpEmailDispatcher(host="").send_password_reset_email("a@x.com", TOKEN, "https://shop.example"))


def test_sends_via_smtp() -> None:
    server = MagicMock()
    with patch("mail.dispatcher.smtplib.SMTP") as smtp_cls:
        smtp_cls.return_value.__enter__.return_value = server
        dispatcher = SmtpEmailDispatcher(host="smtp.example", username="u", password="p")
        asyncio.run(dispatcher.send_password_reset_email("a@x.com", TOKEN, "https://shop.example"))
    smtp_cls.assert_called_once_with("smtp.example", 587, timeout=10.0)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("u", "p")
    sent = server.send_message.call_args.args[0]
    assert sent["To"] == "a@x.com"


@pytest.mark.parametrize("error", [OSError("connection refused"), smtplib.SMTPAuthenticationError(535, b"bad creds")])
def test_transport_errors_become_delivery_errors(error: Exception) -> None:
    with patch("mail.dispatcher.smtplib.SMTP", side_effect=error):
        dispatcher = SmtpEmailDispatcher(host="smtp.example")
        with pytest.raises(EmailDeliveryError):
            asyncio.run(dispatcher.send_password_reset_email("a@x.com", TOKEN, "https://shop.example"))
