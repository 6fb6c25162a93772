"""Tests for the session gate: service, API routes and page redirects."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from tietrack.core.config import settings
from tietrack.db.base import utcnow
from tietrack.db.models import AuthSession
from tietrack.services.auth import (
    INVALID_CREDENTIALS_MESSAGE,
    AuthService,
    InvalidCredentialsError,
)


async def _session_count(db_session) -> int:
    result = await db_session.execute(select(func.count()).select_from(AuthSession))
    return result.scalar()


# =============================================================================
# Service Tests
# =============================================================================


class TestAuthService:
    """Tests for AuthService."""

    @pytest.mark.asyncio
    async def test_login_issues_token(self, db_session):
        service = AuthService(db_session, username="admin", password="secret")

        issued = await service.login("admin", "secret")

        assert issued.username == "admin"
        assert len(issued.token) > 20
        assert issued.expires_at > utcnow()
        assert await service.verify(issued.token) == "admin"

    @pytest.mark.asyncio
    async def test_wrong_password_stores_nothing(self, db_session):
        service = AuthService(db_session, username="admin", password="secret")

        with pytest.raises(InvalidCredentialsError) as exc_info:
            await service.login("admin", "wrong")

        assert str(exc_info.value) == INVALID_CREDENTIALS_MESSAGE
        assert await _session_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_wrong_username_same_message(self, db_session):
        service = AuthService(db_session, username="admin", password="secret")

        with pytest.raises(InvalidCredentialsError) as exc_info:
            await service.login("root", "secret")

        assert str(exc_info.value) == INVALID_CREDENTIALS_MESSAGE

    @pytest.mark.asyncio
    async def test_credentials_are_exact(self, db_session):
        service = AuthService(db_session, username="admin", password="secret")
        assert not service.check_credentials("Admin", "secret")
        assert not service.check_credentials("admin", "secret ")
        assert not service.check_credentials("", "")

    @pytest.mark.asyncio
    async def test_expired_session_rejected_and_removed(self, db_session):
        service = AuthService(db_session, username="admin", password="secret")
        issued = await service.login("admin", "secret")

        stored = await db_session.get(AuthSession, issued.token)
        stored.expires_at = utcnow() - timedelta(minutes=1)
        await db_session.flush()

        assert await service.verify(issued.token) is None
        assert await _session_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_unknown_or_missing_token(self, db_session):
        service = AuthService(db_session)
        assert await service.verify(None) is None
        assert await service.verify("") is None
        assert await service.verify("not-a-token") is None

    @pytest.mark.asyncio
    async def test_logout_revokes(self, db_session):
        service = AuthService(db_session, username="admin", password="secret")
        issued = await service.login("admin", "secret")

        assert await service.logout(issued.token) is True
        assert await service.verify(issued.token) is None
        assert await service.logout(issued.token) is False

    @pytest.mark.asyncio
    async def test_purge_expired(self, db_session):
        now = utcnow()
        db_session.add(AuthSession(token="old", username="admin", expires_at=now - timedelta(hours=1)))
        db_session.add(AuthSession(token="new", username="admin", expires_at=now + timedelta(hours=1)))
        await db_session.flush()

        assert await AuthService(db_session).purge_expired() == 1
        assert await db_session.get(AuthSession, "new") is not None


# =============================================================================
# API Tests
# =============================================================================


class TestAuthAPI:
    """Tests for /api/auth endpoints and the gate on /api/v1."""

    @pytest.mark.asyncio
    async def test_login_sets_cookie(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/login",
            json={"username": settings.auth_username, "password": settings.auth_password},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["username"] == settings.auth_username
        assert data["redirect_to"] == "/"
        assert response.cookies.get(settings.session_cookie_name) == data["token"]

    @pytest.mark.asyncio
    async def test_failed_login(self, client: AsyncClient, db_session):
        response = await client.post(
            "/api/auth/login",
            json={"username": settings.auth_username, "password": "nope"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == INVALID_CREDENTIALS_MESSAGE
        assert settings.session_cookie_name not in response.cookies
        assert await _session_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_v1_requires_session(self, client: AsyncClient):
        response = await client.get("/api/v1/ties")
        assert response.status_code == 401

        response = await client.get("/api/v1/categories")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_expired_token_removed_on_request(self, client: AsyncClient, db_session):
        db_session.add(AuthSession(
            token="stale-token",
            username=settings.auth_username,
            expires_at=utcnow() - timedelta(minutes=1),
        ))
        await db_session.commit()

        response = await client.get(
            "/api/v1/ties", headers={"Authorization": "Bearer stale-token"}
        )

        assert response.status_code == 401
        assert await _session_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_bearer_token_accepted(self, auth_client: AsyncClient):
        response = await auth_client.get("/api/v1/ties")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_session_status(self, client: AsyncClient, auth_client: AsyncClient):
        response = await auth_client.get("/api/auth/session")
        assert response.json() == {"authenticated": True, "username": settings.auth_username}

    @pytest.mark.asyncio
    async def test_session_status_anonymous(self, client: AsyncClient):
        response = await client.get("/api/auth/session")
        assert response.json() == {"authenticated": False, "username": None}

    @pytest.mark.asyncio
    async def test_logout_revokes_token(self, auth_client: AsyncClient):
        response = await auth_client.post("/api/auth/logout")
        assert response.status_code == 200
        assert response.json()["authenticated"] is False

        response = await auth_client.get("/api/v1/ties")
        assert response.status_code == 401


# =============================================================================
# Page Redirect Tests
# =============================================================================


class TestPages:
    """Tests for the login and inventory views."""

    @pytest.mark.asyncio
    async def test_inventory_redirects_to_login(self, client: AsyncClient):
        response = await client.get("/")
        assert response.status_code == 303
        assert response.headers["location"] == "/login"

    @pytest.mark.asyncio
    async def test_login_page_shown_when_anonymous(self, client: AsyncClient):
        response = await client.get("/login")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_login_page_redirects_when_logged_in(self, auth_client: AsyncClient):
        response = await auth_client.get("/login")
        assert response.status_code == 303
        assert response.headers["location"] == "/"

    @pytest.mark.asyncio
    async def test_inventory_shown_when_logged_in(self, auth_client: AsyncClient):
        response = await auth_client.get("/")
        assert response.status_code == 200
