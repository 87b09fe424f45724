"""Credential store — data access for OTP challenges and client profiles."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from flexkit_gateway.models.client_profile import ClientProfile
from flexkit_gateway.models.otp_challenge import OtpChallenge


class OtpChallengeRepository:
    """Encapsulates all database queries related to OTP challenges.

    Callers own the transaction; methods flush but never commit.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, challenge: OtpChallenge) -> OtpChallenge:
        self._session.add(challenge)
        await self._session.flush()
        return challenge

    async def delete_for(self, correlation_key: str, email: str) -> int:
        """Delete every challenge issued for *correlation_key* or *email*."""
        stmt = delete(OtpChallenge).where(
            or_(
                OtpChallenge.correlation_key == correlation_key,
                OtpChallenge.identity_email == email,
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def purge_expired_or_used(self, now: datetime) -> int:
        stmt = delete(OtpChallenge).where(
            or_(OtpChallenge.expires_at < now, OtpChallenge.used.is_(True))
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def find_active(
        self, *, correlation_key: str | None = None, email: str | None = None
    ) -> OtpChallenge | None:
        """Return the newest unused challenge for a request id or an email.

        Expiry is not filtered here so the caller can tell "expired" apart
        from "never issued".
        """
        if correlation_key is None and email is None:
            return None
        stmt = select(OtpChallenge).where(OtpChallenge.used.is_(False))
        if correlation_key is not None:
            stmt = stmt.where(OtpChallenge.correlation_key == correlation_key)
        else:
            stmt = stmt.where(OtpChallenge.identity_email == email)
        stmt = stmt.order_by(OtpChallenge.id.desc()).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_used(self, challenge_id: int, now: datetime) -> bool:
        """Atomically flip ``used``; only the first caller gets ``True``."""
        stmt = (
            update(OtpChallenge)
            .where(OtpChallenge.id == challenge_id, OtpChallenge.used.is_(False))
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def delete(self, challenge_id: int) -> None:
        await self._session.execute(
            delete(OtpChallenge).where(OtpChallenge.id == challenge_id)
        )


class ClientProfileRepository:
    """Encapsulates all database queries related to cached client profiles."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find(self, mindbody_client_id: str) -> ClientProfile | None:
        stmt = select(ClientProfile).where(
            ClientProfile.mindbody_client_id == mindbody_client_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(
        self,
        mindbody_client_id: str,
        *,
        site_id: str,
        first_name: str,
        last_name: str,
        email: str,
        phone: str,
        correlation_key: str | None,
        now: datetime,
        expires_at: datetime,
    ) -> ClientProfile:
        """Insert a profile row, or refresh the existing one for this client."""
        profile = await self.find(mindbody_client_id)
        if profile is None:
            profile = ClientProfile(mindbody_client_id=mindbody_client_id, created_at=now)
            self._session.add(profile)
        profile.site_id = site_id
        profile.first_name = first_name
        profile.last_name = last_name
        profile.email = email
        profile.phone = phone
        profile.correlation_key = correlation_key
        profile.last_login = now
        profile.expires_at = expires_at
        profile.updated_at = now
        await self._session.flush()
        return profile

    async def get_live(self, mindbody_client_id: str, now: datetime) -> ClientProfile | None:
        """Return the profile if it has not expired; expired rows are deleted."""
        profile = await self.find(mindbody_client_id)
        if profile is None:
            return None
        if profile.is_expired(now):
            await self._session.delete(profile)
            await self._session.flush()
            return None
        return profile

    async def delete(self, mindbody_client_id: str) -> bool:
        stmt = delete(ClientProfile).where(
            ClientProfile.mindbody_client_id == mindbody_client_id
        )
        result = await self._session.execute(stmt)
        return (result.rowcount or 0) > 0
