"""Tests for the OTP challenge and client profile repositories."""

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from flexkit_gateway.database.repository import ClientProfileRepository, OtpChallengeRepository
from flexkit_gateway.models.otp_challenge import OtpChallenge

NOW = datetime(2030, 1, 15, 9, 0, tzinfo=UTC)


def _challenge(key: str, email: str, *, minutes: int = 10, used: bool = False) -> OtpChallenge:
    return OtpChallenge(
        correlation_key=key,
        code_hash="h" * 64,
        code_salt="s" * 32,
        identity_id="100015",
        identity_email=email,
        created_at=NOW,
        expires_at=NOW + timedelta(minutes=minutes),
        used=used,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Seed two challenges and yield a session."""
    async with session_factory() as session:
        session.add_all(
            [
                _challenge("req-alice", "alice@example.com"),
                _challenge("req-carol", "carol.davis@example.com"),
            ]
        )
        await session.commit()
        yield session


# ── OTP challenges ───────────────────────────────────────

@pytest.mark.asyncio
async def test_find_active_by_correlation_key(db_session):
    repo = OtpChallengeRepository(db_session)
    challenge = await repo.find_active(correlation_key="req-alice")
    assert challenge is not None
    assert challenge.identity_email == "alice@example.com"


@pytest.mark.asyncio
async def test_find_active_by_email(db_session):
    repo = OtpChallengeRepository(db_session)
    challenge = await repo.find_active(email="carol.davis@example.com")
    assert challenge is not None
    assert challenge.correlation_key == "req-carol"


@pytest.mark.asyncio
async def test_find_active_no_match(db_session):
    repo = OtpChallengeRepository(db_session)
    assert await repo.find_active(correlation_key="nonexistent") is None
    assert await repo.find_active() is None


@pytest.mark.asyncio
async def test_find_active_returns_expired_rows(db_session):
    repo = OtpChallengeRepository(db_session)
    await repo.add(_challenge("req-old", "old@example.com", minutes=-1))
    challenge = await repo.find_active(correlation_key="req-old")
    assert challenge is not None
    assert challenge.is_expired(NOW)


@pytest.mark.asyncio
async def test_mark_used_only_succeeds_once(db_session):
    repo = OtpChallengeRepository(db_session)
    challenge = await repo.find_active(correlation_key="req-alice")

    assert await repo.mark_used(challenge.id, NOW) is True
    assert await repo.mark_used(challenge.id, NOW) is False
    assert await repo.find_active(correlation_key="req-alice") is None


@pytest.mark.asyncio
async def test_delete_for_matches_key_or_email(db_session):
    repo = OtpChallengeRepository(db_session)
    removed = await repo.delete_for("req-unknown", "alice@example.com")
    assert removed == 1
    assert await repo.find_active(correlation_key="req-alice") is None
    assert await repo.find_active(correlation_key="req-carol") is not None


@pytest.mark.asyncio
async def test_purge_expired_or_used(db_session):
    repo = OtpChallengeRepository(db_session)
    await repo.add(_challenge("req-expired", "x@example.com", minutes=-5))
    await repo.add(_challenge("req-used", "y@example.com", used=True))

    purged = await repo.purge_expired_or_used(NOW)

    assert purged == 2
    keys = (await db_session.execute(select(OtpChallenge.correlation_key))).scalars().all()
    assert sorted(keys) == ["req-alice", "req-carol"]


# ── Client profiles ──────────────────────────────────────

async def _upsert(repo: ClientProfileRepository, *, first_name: str = "Alice", days: int = 30):
    return await repo.upsert(
        "100015",
        site_id="-99",
        first_name=first_name,
        last_name="Johnson",
        email="alice@example.com",
        phone="+15551234567",
        correlation_key="req-alice",
        now=NOW,
        expires_at=NOW + timedelta(days=days),
    )


@pytest.mark.asyncio
async def test_upsert_inserts_then_refreshes(db_session):
    repo = ClientProfileRepository(db_session)
    first = await _upsert(repo)
    second = await _upsert(repo, first_name="Alicia")

    assert first.id == second.id
    profile = await repo.find("100015")
    assert profile.first_name == "Alicia"


@pytest.mark.asyncio
async def test_get_live_returns_unexpired_profile(db_session):
    repo = ClientProfileRepository(db_session)
    await _upsert(repo)
    profile = await repo.get_live("100015", NOW + timedelta(days=1))
    assert profile is not None
    assert profile.email == "alice@example.com"


@pytest.mark.asyncio
async def test_get_live_deletes_expired_profile(db_session):
    repo = ClientProfileRepository(db_session)
    await _upsert(repo, days=1)
    assert await repo.get_live("100015", NOW + timedelta(days=2)) is None
    assert await repo.find("100015") is None


@pytest.mark.asyncio
async def test_delete_profile(db_session):
    repo = ClientProfileRepository(db_session)
    await _upsert(repo)
    assert await repo.delete("100015") is True
    assert await repo.delete("100015") is False
