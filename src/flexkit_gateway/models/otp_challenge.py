"""SQLAlchemy OtpChallenge model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from flexkit_gateway.models.base import Base, as_utc, utcnow


class OtpChallenge(Base):
    """A one-time code issued to prove control of an email address.

    The code itself is never stored; only a salted HMAC of it.  The
    ``correlation_key`` is the opaque request id handed back to the caller
    and echoed on verification.
    """

    __tablename__ = "otp_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    correlation_key: Mapped[str] = mapped_column(String(64), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    code_salt: Mapped[str] = mapped_column(String(64), nullable=False)
    identity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    identity_email: Mapped[str] = mapped_column(String(256), nullable=False)
    delivery_channel: Mapped[str] = mapped_column(String(16), default="email")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False)
    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_otp_challenges_correlation_key", "correlation_key"),
        Index("ix_otp_challenges_identity_email", "identity_email"),
        Index("ix_otp_challenges_expires_at", "expires_at"),
    )

    def is_expired(self, now: datetime) -> bool:
        return as_utc(self.expires_at) <= now

    def __repr__(self) -> str:
        return (
            f"<OtpChallenge id={self.id} key={self.correlation_key!r} "
            f"email={self.identity_email!r} used={self.used}>"
        )
