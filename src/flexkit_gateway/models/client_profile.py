"""SQLAlchemy ClientProfile model — local cache of logged-in identities."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from flexkit_gateway.models.base import Base, as_utc, utcnow


class ClientProfile(Base):
    """Snapshot of an upstream client taken at login.

    A live row is the secondary check that an identity is still recognised;
    deleting it (logout) revokes every bearer token issued for that client.
    """

    __tablename__ = "client_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mindbody_client_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True
    )
    correlation_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    site_id: Mapped[str] = mapped_column(String(32), default="")
    first_name: Mapped[str] = mapped_column(String(128), default="")
    last_name: Mapped[str] = mapped_column(String(128), default="")
    email: Mapped[str] = mapped_column(String(256), default="")
    phone: Mapped[str] = mapped_column(String(64), default="")
    last_login: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (Index("ix_client_profiles_expires_at", "expires_at"),)

    def is_expired(self, now: datetime) -> bool:
        return as_utc(self.expires_at) <= now

    def __repr__(self) -> str:
        return f"<ClientProfile id={self.id} client={self.mindbody_client_id!r}>"
