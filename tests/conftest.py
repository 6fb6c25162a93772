"""Pytest configuration and fixtures."""

import io
import os
import tempfile
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Create a temporary directory for test paths
_test_tmp_dir = tempfile.mkdtemp(prefix="tietrack_test_")
_test_config_path = Path(_test_tmp_dir) / "config"
_test_media_path = Path(_test_tmp_dir) / "media"
_test_config_path.mkdir(parents=True, exist_ok=True)
_test_media_path.mkdir(parents=True, exist_ok=True)

# Set config paths BEFORE importing app modules
os.environ["TIETRACK_CONFIG_PATH"] = str(_test_config_path)
os.environ["TIETRACK_MEDIA_PATH"] = str(_test_media_path)
os.environ["TIETRACK_AUTH_USERNAME"] = "admin"
os.environ["TIETRACK_AUTH_PASSWORD"] = "letmein"

from tietrack.core.config import settings  # noqa: E402
from tietrack.db import get_db, get_session_factory  # noqa: E402
from tietrack.db.base import Base  # noqa: E402
from tietrack.main import app  # noqa: E402
from tietrack.services.events import ChangeBroadcaster, get_change_broadcaster  # noqa: E402
from tietrack.services.image import ImageStore, get_image_store  # noqa: E402

TEST_MEDIA_PREFIX = "http://test/media/"


def make_png(width: int = 32, height: int = 48, color: str = "navy") -> bytes:
    """Encode a small solid-color PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def db_engine():
    """Create an in-memory test database engine."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with async_session() as session:
        yield session


@pytest.fixture
async def file_session_factory(tmp_path):
    """Session factory over a file database, for tests running concurrent sessions."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'live.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def broadcaster():
    """A change feed not shared with other tests."""
    return ChangeBroadcaster.isolated()


@pytest.fixture
def image_store(tmp_path):
    """An image store rooted in a temporary directory."""
    root = tmp_path / "media"
    root.mkdir()
    return ImageStore(root, TEST_MEDIA_PREFIX)


@pytest.fixture
def png_bytes():
    """A valid PNG image."""
    return make_png()


@pytest.fixture
def make_image():
    """Factory for PNG images of a given size."""
    return make_png


# =============================================================================
# Client Fixtures
# =============================================================================


@pytest.fixture
async def client(db_engine, image_store, broadcaster):
    """Create a test client with overridden database, store and feed."""
    async_session = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False
    )

    async def override_get_db():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: async_session
    app.dependency_overrides[get_image_store] = lambda: image_store
    app.dependency_overrides[get_change_broadcaster] = lambda: broadcaster

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def auth_client(client):
    """A test client holding a valid session token."""
    response = await client.post(
        "/api/auth/login",
        json={"username": settings.auth_username, "password": settings.auth_password},
    )
    assert response.status_code == 200
    client.headers["Authorization"] = f"Bearer {response.json()['token']}"
    client.cookies.clear()
    yield client


def pytest_sessionfinish(session, exitstatus):
    """Clean up temp directories after test session."""
    import shutil
    if Path(_test_tmp_dir).exists():
        shutil.rmtree(_test_tmp_dir, ignore_errors=True)
