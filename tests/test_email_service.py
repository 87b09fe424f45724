"""Tests for EmailService (SMTP transport mocked)."""

from unittest.mock import AsyncMock

import aiosmtplib
import pytest

from flexkit_gateway.services import email_service as email_module
from flexkit_gateway.services.email_service import EmailDeliveryError, EmailService


@pytest.fixture
def smtp_send(monkeypatch):
    send = AsyncMock(return_value=({}, "OK"))
    monkeypatch.setattr(email_module.aiosmtplib, "send", send)
    return send


@pytest.mark.asyncio
async def test_send_otp_email(settings, smtp_send):
    message_id = await EmailService(settings).send_otp_email(
        "alice@example.com", "482913", "Alice <Johnson>"
    )

    msg = smtp_send.call_args.args[0]
    assert msg["To"] == "alice@example.com"
    assert msg["Subject"] == "FlexKit Verification Code"
    assert msg["Message-ID"] == message_id
    assert smtp_send.call_args.kwargs["hostname"] == settings.smtp_host

    text = msg.get_body(("plain",)).get_content()
    html = msg.get_body(("html",)).get_content()
    assert "482913" in text and "482913" in html
    assert "expire in 10 minutes" in text
    assert "Alice &lt;Johnson&gt;" in html


@pytest.mark.asyncio
async def test_smtp_failure_raises_delivery_error(settings, smtp_send):
    smtp_send.side_effect = aiosmtplib.SMTPConnectError("connection refused")
    with pytest.raises(EmailDeliveryError):
        await EmailService(settings).send("alice@example.com", "Hi", "<p>Hi</p>", "Hi")
