"""Email service — sends transactional emails via async SMTP."""

from __future__ import annotations

import logging
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from html import escape

import aiosmtplib

from flexkit_gateway.config import Settings

logger = logging.getLogger(__name__)

OTP_SUBJECT = "FlexKit Verification Code"

_OTP_HTML = """\
<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; color: #222;">
    <p>Hi {name},</p>
    <p>Please use the following code to authenticate your account.
       If you did not request this code, please disregard this email.
       Never give this code to anyone, including FlexKit employees.</p>
    <p style="font-size: 28px; letter-spacing: 6px;"><strong>{code}</strong></p>
    <p>This code will expire in {minutes} minutes.</p>
    <p style="color: #777;">Powered by FlexKit</p>
  </body>
</html>
"""


class EmailDeliveryError(RuntimeError):
    """Raised when the SMTP server rejects or cannot receive a message."""


class EmailService:
    """Sends transactional emails using the configured SMTP server."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> str:
        """Send a multipart message and return its Message-ID.

        Parameters
        ----------
        to:
            Recipient email address.
        subject:
            Subject line.
        html_body / text_body:
            The two alternative renderings of the message.
        """
        s = self._settings
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((s.email_from_name, s.email_from))
        msg["To"] = to
        msg["Message-ID"] = make_msgid(domain=s.email_from.partition("@")[2] or None)
        msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")

        logger.info("Sending '%s' email to %s", subject, to)
        try:
            await aiosmtplib.send(
                msg,
                hostname=s.smtp_host,
                port=s.smtp_port,
                username=s.smtp_username or None,
                password=s.smtp_password or None,
                start_tls=s.smtp_start_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("Email to %s failed: %s", to, exc)
            raise EmailDeliveryError(str(exc)) from exc

        logger.info("Email sent to %s", to)
        return msg["Message-ID"]

    async def send_otp_email(self, to: str, code: str, name: str = "") -> str:
        """Send the one-time login code to *to*."""
        minutes = max(self._settings.otp_ttl_seconds // 60, 1)
        greeting = name or "there"
        text = (
            f"Hi {greeting},\n\n"
            "Please use the following code to authenticate your account. "
            "If you did not request this code, please disregard this email. "
            "Never give this code to anyone, including FlexKit employees.\n\n"
            f"Code: {code}\n\n"
            f"This code will expire in {minutes} minutes.\n\n"
            "Powered by FlexKit"
        )
        html_body = _OTP_HTML.format(name=escape(greeting), code=code, minutes=minutes)
        return await self.send(to, OTP_SUBJECT, html_body, text)
