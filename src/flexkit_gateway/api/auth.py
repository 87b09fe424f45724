"""Authentication routes — email OTP login, status and logout.

Endpoints
---------
POST /api/auth/email    → send a one-time code, returns ``request_id``
POST /api/auth/verify   → exchange request id (or email) + code for a token
GET  /api/auth/status   → who am I (works anonymously)
POST /api/auth/logout   → revoke every token for the caller
"""

from __future__ import annotations

import logging
from typing import Any

from email_validator import EmailNotValidError, validate_email
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator, model_validator

from flexkit_gateway.api.dependencies import (
    get_authenticator,
    get_mindbody,
    optional_client,
    require_client,
)
from flexkit_gateway.api.responses import success
from flexkit_gateway.errors import UpstreamError
from flexkit_gateway.services.mindbody_client import MindbodyClient
from flexkit_gateway.services.otp_authenticator import (
    AuthenticatedClient,
    OtpAuthenticator,
)
from flexkit_gateway.services.otp_hashing import OTP_LENGTH

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def check_email(value: str | None) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("Email is required")
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError("Invalid email format") from exc
    return value


# ── Request models ───────────────────────────────────────


class EmailLoginRequest(BaseModel):
    email: str | None = Field(default=None, validate_default=True)

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str | None) -> str:
        return check_email(value)


class VerifyRequest(BaseModel):
    request_id: str | None = None
    email: str | None = None
    otp: str | None = Field(default=None, validate_default=True)

    @model_validator(mode="before")
    @classmethod
    def _has_correlation(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("request_id") and not data.get("email"):
            raise ValueError("Email is required")
        return data

    @field_validator("otp")
    @classmethod
    def _six_digits(cls, value: str | None) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("OTP code is required")
        if len(value) != OTP_LENGTH or not value.isdigit():
            raise ValueError(f"OTP code must be {OTP_LENGTH} digits")
        return value

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return check_email(value)


# ──────────────────────────────────────────────────────────────
# POST /api/auth/email — send code
# ──────────────────────────────────────────────────────────────
@router.post("/email")
async def request_code(
    body: EmailLoginRequest,
    authenticator: OtpAuthenticator = Depends(get_authenticator),
) -> dict:
    receipt = await authenticator.request_challenge(body.email)
    return success(
        {
            "request_id": receipt.request_id,
            "email": receipt.email,
            "expires_in": receipt.expires_in,
        },
        "Verification code sent successfully.",
    )


# ──────────────────────────────────────────────────────────────
# POST /api/auth/verify — exchange code for a bearer token
# ──────────────────────────────────────────────────────────────
@router.post("/verify")
async def verify_code(
    body: VerifyRequest,
    authenticator: OtpAuthenticator = Depends(get_authenticator),
    mindbody: MindbodyClient = Depends(get_mindbody),
) -> dict:
    login = await authenticator.verify_challenge(
        body.otp, request_id=body.request_id, email=body.email
    )

    schedule: list = []
    try:
        schedule = await mindbody.get_client_schedule(login.identity.id)
    except UpstreamError as exc:
        logger.warning("Schedule fetch failed for %s: %s", login.identity.id, exc)

    return success(
        {
            "access_token": login.access_token,
            "token_type": login.token_type,
            "expires_in": login.expires_in,
            "client": login.identity.to_public(),
            "schedule": schedule,
        },
        "Verification successful.",
    )


# ──────────────────────────────────────────────────────────────
# GET /api/auth/status
# ──────────────────────────────────────────────────────────────
@router.get("/status")
async def auth_status(
    current: AuthenticatedClient | None = Depends(optional_client),
) -> dict:
    return success(
        {
            "authenticated": current is not None,
            "client": current.identity.to_public() if current else None,
            "expires_at": current.expires_at.isoformat() if current else None,
        },
        "Authentication status retrieved",
    )


# ──────────────────────────────────────────────────────────────
# POST /api/auth/logout
# ──────────────────────────────────────────────────────────────
@router.post("/logout")
async def logout(
    current: AuthenticatedClient = Depends(require_client),
    authenticator: OtpAuthenticator = Depends(get_authenticator),
) -> dict:
    await authenticator.logout(current.identity.id)
    return success(message="Logged out successfully")
