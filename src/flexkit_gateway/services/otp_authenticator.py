"""OTP authenticator — passwordless email login.

Flow
----
1. ``request_challenge``: find the upstream client by exact email, store a
   salted hash of a fresh 6-digit code under an opaque request id, email
   the code.
2. ``verify_challenge``: look the challenge up by request id (or email),
   check expiry and code, consume it atomically, cache the client profile
   and mint a bearer token.
3. ``authenticate``: validate a bearer token and require a live cached
   profile for its subject.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flexkit_gateway.config import Settings
from flexkit_gateway.database.repository import (
    ClientProfileRepository,
    OtpChallengeRepository,
)
from flexkit_gateway.errors import (
    AuthRequired,
    ChallengeExpired,
    ChallengeNotFound,
    DeliveryFailed,
    IdentityNotFound,
    InvalidCode,
    InvalidRequest,
    TokenInvalid,
)
from flexkit_gateway.models.otp_challenge import OtpChallenge
from flexkit_gateway.services.email_service import EmailDeliveryError, EmailService
from flexkit_gateway.services.mindbody_client import Identity, MindbodyClient
from flexkit_gateway.services.otp_hashing import (
    generate_code,
    generate_salt,
    hash_code,
    verify_code,
)
from flexkit_gateway.services.token_issuer import SESSION_PURPOSE, TokenIssuer

logger = logging.getLogger(__name__)

AUTH_METHOD = "otp_email"
TOKEN_TYPE = "Bearer"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class ChallengeReceipt:
    request_id: str
    email: str
    expires_in: int


@dataclass
class VerifiedLogin:
    identity: Identity
    access_token: str
    token_type: str
    expires_in: int


@dataclass
class AuthenticatedClient:
    identity: Identity
    expires_at: datetime


class OtpAuthenticator:
    """Issues and verifies one-time email codes."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        mindbody: MindbodyClient,
        email_service: EmailService,
        token_issuer: TokenIssuer,
        settings: Settings,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._mindbody = mindbody
        self._email = email_service
        self._tokens = token_issuer
        self._settings = settings
        self._clock = clock
        self._hash_secret = settings.jwt_secret

    # ── Challenge issue ──────────────────────────────────

    async def request_challenge(
        self, email: str, correlation_key: str | None = None
    ) -> ChallengeReceipt:
        identity = await self._mindbody.find_client_by_email(email)
        if identity is None:
            logger.info("No client matches %s", email)
            raise IdentityNotFound()

        normalized = email.strip().lower()
        request_id = correlation_key or secrets.token_hex(16)
        code = generate_code()
        salt = generate_salt()
        now = self._clock()
        ttl = self._settings.otp_ttl_seconds

        async with self._session_factory() as session:
            repo = OtpChallengeRepository(session)
            await repo.delete_for(request_id, normalized)
            purged = await repo.purge_expired_or_used(now)
            challenge = await repo.add(
                OtpChallenge(
                    correlation_key=request_id,
                    code_hash=hash_code(code, salt, self._hash_secret),
                    code_salt=salt,
                    identity_id=identity.id,
                    identity_email=normalized,
                    delivery_channel="email",
                    created_at=now,
                    expires_at=now + timedelta(seconds=ttl),
                )
            )
            await session.commit()
            challenge_id = challenge.id

        if purged:
            logger.debug("Purged %d stale OTP challenges", purged)

        try:
            await self._deliver(identity, code)
        except EmailDeliveryError as exc:
            async with self._session_factory() as session:
                await OtpChallengeRepository(session).delete(challenge_id)
                await session.commit()
            raise DeliveryFailed() from exc

        logger.info("OTP challenge %s issued for client %s", request_id, identity.id)
        return ChallengeReceipt(request_id=request_id, email=email, expires_in=ttl)

    async def _deliver(self, identity: Identity, code: str) -> None:
        if self._settings.delivery_bypass_active:
            logger.warning(
                "Email delivery bypassed (%s): OTP for %s is %s",
                self._settings.app_env, identity.email, code,
            )
            return
        await self._email.send_otp_email(identity.email, code, identity.display_name)

    # ── Challenge verification ───────────────────────────

    async def verify_challenge(
        self,
        code: str,
        *,
        request_id: str | None = None,
        email: str | None = None,
    ) -> VerifiedLogin:
        if not request_id and not email:
            raise InvalidRequest("request_id or email is required")

        now = self._clock()
        async with self._session_factory() as session:
            repo = OtpChallengeRepository(session)
            if request_id:
                challenge = await repo.find_active(correlation_key=request_id)
            else:
                challenge = await repo.find_active(email=email.strip().lower())

            if challenge is None:
                raise ChallengeNotFound()

            if challenge.is_expired(now):
                await repo.delete(challenge.id)
                await session.commit()
                raise ChallengeExpired()

            if not verify_code(code, challenge.code_salt, challenge.code_hash, self._hash_secret):
                logger.warning("Wrong OTP code for challenge %s", challenge.correlation_key)
                raise InvalidCode()

            if not await repo.mark_used(challenge.id, now):
                logger.warning("OTP challenge %s already consumed", challenge.correlation_key)
                raise ChallengeNotFound()
            await session.commit()

            identity_id = challenge.identity_id
            correlation_key = challenge.correlation_key

        identity = await self._mindbody.get_client(identity_id)
        if identity is None:
            raise IdentityNotFound()

        profile_ttl = timedelta(days=self._settings.client_profile_ttl_days)
        async with self._session_factory() as session:
            await ClientProfileRepository(session).upsert(
                identity.id,
                site_id=identity.site_id,
                first_name=identity.first_name,
                last_name=identity.last_name,
                email=identity.email,
                phone=identity.phone,
                correlation_key=correlation_key,
                now=now,
                expires_at=now + profile_ttl,
            )
            await session.commit()

        token = self._tokens.issue(
            identity,
            extra_claims={"auth_time": int(now.timestamp()), "auth_method": AUTH_METHOD},
            ttl=self._settings.access_token_ttl_seconds,
        )
        logger.info("Client %s authenticated via email OTP", identity.id)
        return VerifiedLogin(
            identity=identity,
            access_token=token,
            token_type=TOKEN_TYPE,
            expires_in=self._settings.access_token_ttl_seconds,
        )

    # ── Bearer sessions ──────────────────────────────────

    async def authenticate(self, token: str) -> AuthenticatedClient:
        """Resolve a bearer token to the client it was issued for."""
        claims = self._tokens.validate(token)
        if claims.get("purpose") != SESSION_PURPOSE or not claims.get("sub"):
            raise TokenInvalid()

        async with self._session_factory() as session:
            profile = await ClientProfileRepository(session).get_live(
                str(claims["sub"]), self._clock()
            )
            await session.commit()

        if profile is None:
            raise AuthRequired("Session is no longer valid", code="session_revoked")

        identity = Identity(
            id=profile.mindbody_client_id,
            first_name=profile.first_name,
            last_name=profile.last_name,
            email=profile.email,
            phone=profile.phone,
            site_id=profile.site_id,
        )
        return AuthenticatedClient(
            identity=identity,
            expires_at=datetime.fromtimestamp(claims["exp"], UTC),
        )

    async def logout(self, identity_id: str) -> bool:
        async with self._session_factory() as session:
            removed = await ClientProfileRepository(session).delete(identity_id)
            await session.commit()
        logger.info("Client %s logged out", identity_id)
        return removed
