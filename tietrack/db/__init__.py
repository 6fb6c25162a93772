"""Database package for TieTrack."""

from tietrack.db.base import Base
from tietrack.db.session import (
    async_session_maker,
    engine,
    get_db,
    get_session_factory,
    init_db,
)

__all__ = [
    "Base",
    "async_session_maker",
    "engine",
    "get_db",
    "get_session_factory",
    "init_db",
]
