"""Database models for TieTrack."""

from tietrack.db.models.auth_session import AuthSession
from tietrack.db.models.category import Category
from tietrack.db.models.tie import Tie

__all__ = [
    "AuthSession",
    "Category",
    "Tie",
]
