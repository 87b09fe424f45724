"""Database engine and async session factory."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from flexkit_gateway.config import Settings
from flexkit_gateway.models.base import Base

# Importing the models registers their tables on Base.metadata.
from flexkit_gateway.models import client_profile, otp_challenge  # noqa: F401


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for ``settings.database_url``.

    In-memory SQLite URLs get a single shared connection so every session
    sees the same database.
    """
    url = settings.database_url
    if url.startswith("sqlite") and (url.endswith("://") or ":memory:" in url):
        return create_async_engine(
            url,
            echo=settings.debug,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(url, echo=settings.debug)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables that don't yet exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
