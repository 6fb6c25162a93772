"""Login, logout and session status endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from tietrack.api.deps import get_current_user, get_session_token
from tietrack.core.config import settings
from tietrack.core.logging import get_logger
from tietrack.db import get_db
from tietrack.schemas.auth import LoginRequest, LoginResponse, SessionStatusResponse
from tietrack.services.auth import AuthService, InvalidCredentialsError

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """Log in with the configured account.

    On success the session token is set as an HttpOnly cookie and also
    returned in the body. On failure nothing is stored and the same
    message is returned whichever field was wrong.
    """
    service = AuthService(db)
    try:
        issued = await service.login(request.username, request.password)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e))

    await db.commit()

    response.set_cookie(
        key=settings.session_cookie_name,
        value=issued.token,
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )

    return LoginResponse(
        username=issued.username,
        token=issued.token,
        expires_at=issued.expires_at,
    )


@router.post("/logout", response_model=SessionStatusResponse)
async def logout(
    response: Response,
    token: str | None = Depends(get_session_token),
    db: AsyncSession = Depends(get_db),
) -> SessionStatusResponse:
    """Revoke the current session and clear the cookie."""
    await AuthService(db).logout(token)
    await db.commit()

    response.delete_cookie(settings.session_cookie_name)
    return SessionStatusResponse(authenticated=False)


@router.get("/session", response_model=SessionStatusResponse)
async def session_status(
    username: str | None = Depends(get_current_user),
) -> SessionStatusResponse:
    """Report whether the caller is logged in."""
    return SessionStatusResponse(authenticated=username is not None, username=username)
