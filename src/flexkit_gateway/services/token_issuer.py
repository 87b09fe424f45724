"""Token issuer — signs and validates HS256 bearer tokens with PyJWT."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import jwt

from flexkit_gateway.errors import ConfigurationError, TokenExpired, TokenInvalid
from flexkit_gateway.services.mindbody_client import Identity
from flexkit_gateway.services.otp_hashing import generate_salt, hash_code, verify_code

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32
OTP_PURPOSE = "otp_verification"
SESSION_PURPOSE = "session"


class TokenIssuer:
    """Issues session tokens and short-lived OTP-purpose tokens.

    Parameters
    ----------
    secret:
        HMAC key; at least 32 bytes.
    issuer:
        Value written to and required in the ``iss`` claim.
    session_ttl / otp_ttl:
        Default lifetimes in seconds.
    clock:
        Returns the current UNIX time; injectable for tests.
    """

    def __init__(
        self,
        secret: str,
        issuer: str,
        *,
        session_ttl: int = 24 * 60 * 60,
        otp_ttl: int = 10 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if len(secret.encode()) < MIN_SECRET_LENGTH:
            raise ConfigurationError(
                f"JWT secret must be at least {MIN_SECRET_LENGTH} bytes long"
            )
        self._secret = secret
        self._issuer = issuer
        self._session_ttl = session_ttl
        self._otp_ttl = otp_ttl
        self._clock = clock

    # ── Session tokens ───────────────────────────────────

    def issue(
        self,
        identity: Identity,
        extra_claims: dict[str, Any] | None = None,
        ttl: int | None = None,
    ) -> str:
        now = int(self._clock())
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "iat": now,
            "exp": now + (ttl if ttl is not None else self._session_ttl),
            "sub": identity.id,
            "purpose": SESSION_PURPOSE,
            "client": identity.to_public(),
        }
        if extra_claims:
            payload.update(extra_claims)
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def validate(self, token: str) -> dict[str, Any]:
        """Return the claims of a well-formed, correctly signed, live token."""
        if not token or token.count(".") != 2:
            raise TokenInvalid()
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                options={
                    "require": ["iss", "iat", "exp"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidIssuerError as exc:
            raise TokenInvalid("Token issuer mismatch") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenInvalid() from exc

        exp = claims.get("exp")
        if not isinstance(exp, int) or exp <= self._clock():
            logger.debug("Rejected expired token for sub=%s", claims.get("sub"))
            raise TokenExpired()
        return claims

    # ── OTP-purpose tokens ───────────────────────────────

    def issue_otp_purpose_token(self, email: str, code: str, ttl: int | None = None) -> str:
        """Embed a salted hash of *code* in a short-lived signed token."""
        now = int(self._clock())
        salt = generate_salt()
        payload = {
            "iss": self._issuer,
            "iat": now,
            "exp": now + (ttl if ttl is not None else self._otp_ttl),
            "purpose": OTP_PURPOSE,
            "email": email,
            "otp_salt": salt,
            "otp_hash": hash_code(code, salt, self._secret),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify_otp_purpose_token(self, token: str, supplied_code: str) -> dict[str, Any]:
        claims = self.validate(token)
        if claims.get("purpose") != OTP_PURPOSE:
            raise TokenInvalid("Token is not an OTP verification token")
        salt = claims.get("otp_salt")
        expected = claims.get("otp_hash")
        if not isinstance(salt, str) or not isinstance(expected, str):
            raise TokenInvalid("Token is missing the OTP hash")
        if not verify_code(supplied_code, salt, expected, self._secret):
            logger.warning("OTP token verification failed for %s", claims.get("email"))
            raise TokenInvalid("Invalid OTP code", code="invalid_otp")
        return claims
