"""Server-side login sessions."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from tietrack.db.base import Base, utcnow


class AuthSession(Base):
    """An issued session token.

    The token is the primary key; clients only ever hold the opaque value.
    """

    __tablename__ = "auth_sessions"

    token: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("ix_auth_sessions_expires_at", "expires_at"),)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the session has passed its expiry time."""
        return (now or utcnow()) >= self.expires_at
