"""
Noted.AI Backend: Transactional Email
=====================================

What:  Verification, password reset, welcome and payment-failed messages.
How:   smtplib + email.message.EmailMessage. Each message carries a plain
       text body with an HTML alternative. smtplib blocks, so sends run in
       the default thread pool executor.

Transport:
    port 465 → SMTP_SSL (implicit TLS)
    other    → SMTP + STARTTLS
    Sender is always `"Noted.AI" <SMTP_USER>`.
"""

import asyncio
import html
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

from noted.config import settings
from noted.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

BRAND_COLOR = "#667eea"

_LAYOUT = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 40px; text-align: center; color: white;">
    <h1 style="margin: 0; font-size: 32px;">Noted.AI</h1>
    <p style="margin: 10px 0 0 0; font-size: 18px;">AI-Powered Academic Assistant</p>
  </div>
  <div style="padding: 40px; background: #f9f9f9;">
    <h2 style="color: #333; margin-bottom: 20px;">{heading}</h2>
    {body}
    <hr style="border: none; border-top: 1px solid #eee; margin: 30px 0;">
    <p style="color: #999; font-size: 12px;">{footer}</p>
  </div>
</div>
"""

_BUTTON = """\
<div style="text-align: center; margin: 30px 0;">
  <a href="{url}" style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 15px 30px; text-decoration: none; border-radius: 25px; display: inline-block; font-weight: bold;">{label}</a>
</div>
<p style="color: #666; font-size: 14px; margin-top: 30px;">
  If the button doesn't work, copy and paste this link into your browser:<br>
  <a href="{url}" style="color: #667eea;">{url}</a>
</p>
"""


def _paragraph(text: str) -> str:
    return f'<p style="color: #666; line-height: 1.6; margin-bottom: 30px;">{text}</p>'


def _render(heading: str, body: str, footer: str) -> str:
    return _LAYOUT.format(heading=heading, body=body, footer=footer)


class Mailer:
    """
    SMTP client for the handful of transactional messages the product sends.

    Callers check `configured` first; `send()` on an
    unconfigured mailer is a programming error and raises EmailDeliveryError.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        frontend_url: Optional[str] = None,
    ):
        self.host = host if host is not None else settings.smtp_host
        self.port = port if port is not None else settings.smtp_port
        self.user = user if user is not None else settings.smtp_user
        self.password = password if password is not None else settings.smtp_pass
        self.frontend_url = (frontend_url or settings.frontend_url).rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def _link(self, path: str) -> str:
        return f"{self.frontend_url}{path}"

    # ── Transport ─────────────────────────────────────────────────────────
    def _deliver(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.port == 465:
            with smtplib.SMTP_SSL(self.host, self.port, context=context,
                                  timeout=settings.smtp_timeout) as server:
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(message)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=settings.smtp_timeout) as server:
                server.starttls(context=context)
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(message)

    async def send(self, to: str, subject: str, text_body: str, html_body: str) -> None:
        """
        Send one message.

        Raises:
            EmailDeliveryError: Not configured, or the SMTP exchange failed.
        """
        if not self.configured:
            raise EmailDeliveryError(context={"reason": "smtp_not_configured"})

        message = EmailMessage()
        message["From"] = formataddr(("Noted.AI", self.user))
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email '%s' to %s failed: %s", subject, to, str(e))
            raise EmailDeliveryError(context={"subject": subject, "error_type": type(e).__name__})

        logger.info("Email '%s' sent to %s", subject, to)

    # ── Messages ──────────────────────────────────────────────────────────
    async def send_verification_email(self, email: str, token: str) -> None:
        url = self._link(f"/verify-email?token={token}")
        body = _paragraph(
            "Thank you for creating your account. To get started with AI-powered note "
            "summarization, flashcard generation, and academic assistance, please verify "
            "your email address."
        ) + _BUTTON.format(url=url, label="Verify Email Address")
        await self.send(
            to=email,
            subject="Verify your Noted.AI account",
            text_body=(
                "Welcome to Noted.AI!\n\n"
                f"Please verify your email address: {url}\n\n"
                "If you didn't create a Noted.AI account, you can safely ignore this email."
            ),
            html_body=_render(
                "Welcome to Noted.AI!",
                body,
                f"This email was sent to {html.escape(email)}. If you didn't create a "
                "Noted.AI account, you can safely ignore this email.",
            ),
        )

    async def send_password_reset_email(self, email: str, token: str) -> None:
        url = self._link(f"/reset-password?token={token}")
        body = _paragraph(
            "We received a request to reset your password. Click the button below to "
            "create a new password. This link will expire in 1 hour."
        ) + _BUTTON.format(url=url, label="Reset Password")
        await self.send(
            to=email,
            subject="Reset your Noted.AI password",
            text_body=(
                "Password Reset Request\n\n"
                f"Reset your password: {url}\n\n"
                "This link will expire in 1 hour. If you didn't request a password reset, "
                "please ignore this email. Your password will remain unchanged."
            ),
            html_body=_render(
                "Password Reset Request",
                body,
                f"This email was sent to {html.escape(email)}. For security reasons, "
                "this link will expire in 1 hour.",
            ),
        )

    async def send_welcome_email(self, email: str, first_name: str) -> None:
        dashboard = self._link("/dashboard")
        pricing = self._link("/pricing")
        body = _paragraph(
            "Congratulations! Your email has been verified and you're now ready to "
            "experience the power of AI in your academic journey."
        ) + (
            '<ul style="color: #666; line-height: 1.8;">'
            "<li><strong>AI Note Summarization:</strong> Transform lengthy notes into concise summaries</li>"
            "<li><strong>Flashcard Generation:</strong> Create study flashcards automatically</li>"
            "<li><strong>Assignment Help:</strong> Get guidance on essays and research papers</li>"
            "<li><strong>Citation Tool:</strong> Generate proper citations in multiple formats</li>"
            "</ul>"
        ) + _BUTTON.format(url=dashboard, label="Start Using Noted.AI") + _paragraph(
            f'<strong>Free Tier:</strong> <a href="{pricing}" style="color: {BRAND_COLOR};">'
            "Upgrade to Premium</a> for unlimited access to all features!"
        )
        await self.send(
            to=email,
            subject="Welcome to Noted.AI - Start Your Academic Journey!",
            text_body=(
                f"Welcome, {first_name}!\n\n"
                "Your email has been verified. Start using Noted.AI: "
                f"{dashboard}\n\nUpgrade to Premium: {pricing}"
            ),
            html_body=_render(
                f"Welcome, {html.escape(first_name)}! 🎉",
                body,
                'Need help? Contact us at <a href="mailto:support@noted.ai" '
                f'style="color: {BRAND_COLOR};">support@noted.ai</a>',
            ),
        )

    async def send_payment_failed_email(self, email: str, first_name: str) -> None:
        billing = self._link("/profile")
        body = _paragraph(
            "We couldn't process the latest payment for your Noted.AI subscription. "
            "Please update your payment method to keep your premium features."
        ) + _BUTTON.format(url=billing, label="Update Payment Method")
        await self.send(
            to=email,
            subject="Action required: Noted.AI payment failed",
            text_body=(
                f"Hi {first_name},\n\n"
                "We couldn't process the latest payment for your Noted.AI subscription.\n"
                f"Update your payment method: {billing}"
            ),
            html_body=_render(
                f"Hi {html.escape(first_name)}, your payment failed",
                body,
                f"This email was sent to {html.escape(email)}.",
            ),
        )


mailer = Mailer()
