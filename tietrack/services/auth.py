"""Session gate: credential check and server-side session tokens.

There is a single account whose credentials come from settings. A
successful login stores a random token with an expiry; the browser only
holds the token. A request is authenticated when its token exists and has
not expired.
"""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from tietrack.core.config import settings
from tietrack.core.logging import get_logger
from tietrack.db.base import utcnow
from tietrack.db.models import AuthSession

logger = get_logger(__name__)

# Same message for either wrong field
INVALID_CREDENTIALS_MESSAGE = "Invalid username or password."


class AuthError(Exception):
    """Base exception for the session gate."""

    pass


class InvalidCredentialsError(AuthError):
    """Raised when a login does not match the configured account."""

    def __init__(self):
        super().__init__(INVALID_CREDENTIALS_MESSAGE)


@dataclass
class IssuedSession:
    """A freshly created session."""

    token: str
    username: str
    expires_at: datetime


class AuthService:
    """Issues, verifies and revokes session tokens."""

    def __init__(
        self,
        db: AsyncSession,
        username: str | None = None,
        password: str | None = None,
        ttl: timedelta | None = None,
    ):
        """Initialize the auth service.

        Args:
            db: The database session.
            username: Accepted username, defaults to ``settings.auth_username``.
            password: Accepted password, defaults to ``settings.auth_password``.
            ttl: Session lifetime, defaults to ``settings.session_ttl_hours``.
        """
        self.db = db
        self._username = username if username is not None else settings.auth_username
        self._password = password if password is not None else settings.auth_password
        self._ttl = ttl or timedelta(hours=settings.session_ttl_hours)

    def check_credentials(self, username: str, password: str) -> bool:
        """Exact, constant-time match against the configured account."""
        user_ok = hmac.compare_digest(
            (username or "").encode("utf-8"), self._username.encode("utf-8")
        )
        password_ok = hmac.compare_digest(
            (password or "").encode("utf-8"), self._password.encode("utf-8")
        )
        return user_ok and password_ok

    async def login(self, username: str, password: str) -> IssuedSession:
        """Log in and issue a session.

        Raises:
            InvalidCredentialsError: If either value does not match. No
                session is created in that case.
        """
        if not self.check_credentials(username, password):
            logger.warning("login_failed")
            raise InvalidCredentialsError()

        now = utcnow()
        session = AuthSession(
            token=secrets.token_urlsafe(32),
            username=username,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self.db.add(session)
        await self.db.flush()

        logger.info("login_succeeded", username=username, expires_at=session.expires_at.isoformat())

        return IssuedSession(
            token=session.token,
            username=session.username,
            expires_at=session.expires_at,
        )

    async def verify(self, token: str | None) -> str | None:
        """Resolve a token to its username.

        Expired tokens are removed and rejected.

        Returns:
            The username, or ``None`` when the token is missing, unknown or expired.
        """
        if not token:
            return None

        session = await self.db.get(AuthSession, token)
        if session is None:
            return None

        if session.is_expired():
            await self.db.delete(session)
            await self.db.flush()
            logger.info("session_expired", username=session.username)
            return None

        return session.username

    async def logout(self, token: str | None) -> bool:
        """Revoke a session.

        Returns:
            True if a session was removed.
        """
        if not token:
            return False

        session = await self.db.get(AuthSession, token)
        if session is None:
            return False

        await self.db.delete(session)
        await self.db.flush()

        logger.info("logout", username=session.username)
        return True

    async def purge_expired(self) -> int:
        """Delete every expired session.

        Returns:
            Number of sessions removed.
        """
        result = await self.db.execute(
            delete(AuthSession).where(AuthSession.expires_at <= utcnow())
        )
        await self.db.flush()

        count = result.rowcount or 0
        if count:
            logger.info("expired_sessions_purged", count=count)
        return count
