"""Declarative base shared by all TieTrack models."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo on round trip."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def fold_key(value: str) -> str:
    """Case-insensitive lookup key for names.

    ``casefold`` also folds non-ASCII capitals, which SQLite's ``lower()``
    leaves untouched.
    """
    return value.strip().casefold()
