"""
Noted.AI Backend: Email Service Unit Tests (Mocked SMTP)
========================================================

What:  Mailer message building and transport selection.
How:   smtplib.SMTP / SMTP_SSL are patched; nothing leaves the process.

What we test:
    ✅ Unconfigured mailer refuses to send
    ✅ Port 587 → STARTTLS + login; port 465 → implicit TLS
    ✅ Links point at FRONTEND_URL with the token
    ✅ SMTP failures → EmailDeliveryError
"""

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from noted.exceptions import EmailDeliveryError
from noted.services.email_service import Mailer


def _mailer(port: int = 587) -> Mailer:
    return Mailer(
        host="smtp.example.com",
        port=port,
        user="noreply@noted.ai",
        password="secret",
        frontend_url="https://app.noted.ai/",
    )


def _sent_message(smtp_cls):
    server = smtp_cls.return_value.__enter__.return_value
    return server, server.send_message.call_args.args[0]


class TestMailerConfiguration:
    def test_configured_needs_host(self):
        assert Mailer(host="").configured is False
        assert _mailer().configured is True

    @pytest.mark.asyncio
    async def test_unconfigured_send_raises(self):
        with pytest.raises(EmailDeliveryError):
            await Mailer(host="").send("a@example.edu", "Subject", "text", "<p>html</p>")


class TestMailerTransport:
    @pytest.mark.asyncio
    async def test_starttls_on_587(self):
        with patch("noted.services.email_service.smtplib.SMTP") as smtp_cls:
            await _mailer(587).send_verification_email("student@example.edu", "tok123")

        server, message = _sent_message(smtp_cls)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("noreply@noted.ai", "secret")
        assert message["To"] == "student@example.edu"
        assert message["Subject"] == "Verify your Noted.AI account"
        assert message["From"] == '"Noted.AI" <noreply@noted.ai>'

    @pytest.mark.asyncio
    async def test_implicit_tls_on_465(self):
        with patch("noted.services.email_service.smtplib.SMTP_SSL") as smtp_ssl_cls, \
             patch("noted.services.email_service.smtplib.SMTP") as smtp_cls:
            await _mailer(465).send_welcome_email("student@example.edu", "Ada")

        smtp_ssl_cls.assert_called_once()
        smtp_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_reset_link_uses_frontend_url(self):
        with patch("noted.services.email_service.smtplib.SMTP") as smtp_cls:
            await _mailer().send_password_reset_email("student@example.edu", "abc")

        _, message = _sent_message(smtp_cls)
        text = message.get_body(preferencelist=("plain",)).get_content()
        html = message.get_body(preferencelist=("html",)).get_content()
        assert "https://app.noted.ai/reset-password?token=abc" in text
        assert "https://app.noted.ai/reset-password?token=abc" in html

    @pytest.mark.asyncio
    async def test_smtp_failure_raises(self):
        with patch("noted.services.email_service.smtplib.SMTP") as smtp_cls:
            server = MagicMock()
            server.send_message.side_effect = smtplib.SMTPRecipientsRefused({})
            smtp_cls.return_value.__enter__.return_value = server

            with pytest.raises(EmailDeliveryError) as exc_info:
                await _mailer().send_payment_failed_email("student@example.edu", "Ada")

        assert exc_info.value.context["error_type"] == "SMTPRecipientsRefused"
