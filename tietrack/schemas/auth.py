"""Pydantic schemas for the session gate."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class LoginRequest(BaseModel):
    """Credentials submitted by the login form."""

    username: str
    password: str


class LoginResponse(BaseModel):
    """Successful login."""

    username: str
    token: str
    expires_at: datetime
    redirect_to: str = "/"


class SessionStatusResponse(BaseModel):
    """Whether the caller holds a valid session."""

    authenticated: bool
    username: str | None = None
