"""Typed error taxonomy shared by every component.

Each failure carries an :class:`ErrorKind`; the gateway turns the kind into
an HTTP status and never looks at the message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    AUTH_REQUIRED = "auth_required"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limit_exceeded"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_HTTP = "upstream_http_error"
    UPSTREAM_PROTOCOL = "upstream_protocol_error"
    DELIVERY_FAILED = "delivery_failed"
    INTERNAL = "internal_error"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTH_REQUIRED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.UPSTREAM_UNAVAILABLE: 500,
    ErrorKind.UPSTREAM_HTTP: 500,
    ErrorKind.UPSTREAM_PROTOCOL: 500,
    ErrorKind.DELIVERY_FAILED: 500,
    ErrorKind.INTERNAL: 500,
}


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration detected while building the application."""


class GatewayError(Exception):
    """Base class for every failure that maps onto the error envelope."""

    kind: ErrorKind = ErrorKind.INTERNAL
    default_message = "Internal Server Error"
    default_code: str | None = None

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.extra = extra or {}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.kind.http_status


# ── Request / auth ───────────────────────────────────────


class InvalidRequest(GatewayError):
    kind = ErrorKind.VALIDATION
    default_message = "Invalid request"


class AuthRequired(GatewayError):
    kind = ErrorKind.AUTH_REQUIRED
    default_message = "Authentication required"


class Forbidden(GatewayError):
    kind = ErrorKind.FORBIDDEN
    default_message = "Forbidden"


class NotFound(GatewayError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


# ── OTP challenges ───────────────────────────────────────


class IdentityNotFound(NotFound):
    default_message = "Client not found"
    default_code = "client_not_found"


class ChallengeNotFound(InvalidRequest):
    default_message = "Invalid or expired OTP code"
    default_code = "invalid_otp"


class ChallengeExpired(InvalidRequest):
    default_message = "OTP code has expired"
    default_code = "otp_expired"


class InvalidCode(InvalidRequest):
    default_message = "Invalid OTP code"
    default_code = "invalid_otp"


class DeliveryFailed(GatewayError):
    kind = ErrorKind.DELIVERY_FAILED
    default_message = "Failed to send OTP email"


# ── Tokens ───────────────────────────────────────────────


class TokenError(AuthRequired):
    default_code = "invalid_token"


class TokenInvalid(TokenError):
    default_message = "Invalid token"


class TokenExpired(TokenError):
    default_message = "Token has expired"
    default_code = "token_expired"


# ── Upstream ─────────────────────────────────────────────


class UpstreamError(GatewayError):
    """Base class for failures talking to the booking platform."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    default_message = "Booking service error"

    @property
    def retryable(self) -> bool:
        return True


class UpstreamTransportError(UpstreamError):
    """Connection, TLS or timeout failure before a response was received."""

    default_message = "Booking service unreachable"


class UpstreamHttpError(UpstreamError):
    """Non-2xx response from the booking platform."""

    default_message = "Booking service returned an error"

    def __init__(
        self, status_code: int, body: str, message: str | None = None
    ) -> None:
        self.upstream_status = status_code
        self.body = body
        super().__init__(message or f"Booking service returned HTTP {status_code}")

    @property
    def kind(self) -> ErrorKind:  # type: ignore[override]
        if self.upstream_status == 404:
            return ErrorKind.NOT_FOUND
        return ErrorKind.UPSTREAM_HTTP

    @property
    def retryable(self) -> bool:
        return self.upstream_status in (408, 429) or self.upstream_status >= 500


class UpstreamProtocolError(UpstreamError):
    kind = ErrorKind.UPSTREAM_PROTOCOL
    default_message = "Booking service returned a malformed response"


class UpstreamUnavailable(UpstreamError):
    default_message = "Booking service unavailable"

    @property
    def retryable(self) -> bool:
        return False


class RateLimitExceeded(GatewayError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "Rate limit exceeded"
    default_code = "rate_limit_exceeded"
