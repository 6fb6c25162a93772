"""Database engine and session management."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tietrack.core.config import settings
from tietrack.core.logging import get_logger
from tietrack.db.base import Base

logger = get_logger(__name__)


def get_database_url() -> str:
    """Build the SQLite URL for ``settings.db_path``, creating its directory."""
    db_path = settings.db_path
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        # /config is not writable outside the container
        db_path = Path("./config") / db_path.name
        db_path.parent.mkdir(parents=True, exist_ok=True)

    return f"sqlite+aiosqlite:///{db_path}"


engine = create_async_engine(
    get_database_url(),
    echo=settings.debug,
    future=True,
    connect_args={
        "timeout": 30,
    },
    pool_pre_ping=True,
)


@event.listens_for(engine.sync_engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable WAL so live-query readers do not block writers."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def init_db() -> None:
    """Create any missing tables.

    Alembic owns schema changes; this only bootstraps a fresh database.
    """
    # Register models on the metadata
    import tietrack.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("database_initialized", url=str(engine.url))


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions.

    Yields:
        An async database session that is committed on success and
        rolled back on any error.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency returning the session factory used by long-lived streams."""
    return async_session_maker
