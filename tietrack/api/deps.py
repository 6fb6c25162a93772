"""Shared request dependencies."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tietrack.core.config import settings
from tietrack.db import get_db
from tietrack.services.auth import AuthService


def get_session_token(request: Request) -> str | None:
    """Read the session token from the cookie or a bearer header."""
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token

    authorization = request.headers.get("authorization", "")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


async def get_current_user(
    token: str | None = Depends(get_session_token),
    db: AsyncSession = Depends(get_db),
) -> str | None:
    """Username of the caller's valid session, if any."""
    username = await AuthService(db).verify(token)
    if username is None and token:
        # Keep the removal of an expired session; the 401 rolls back get_db
        await db.commit()
    return username


async def require_session(
    username: str | None = Depends(get_current_user),
) -> str:
    """Reject requests without a valid session."""
    if username is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return username
