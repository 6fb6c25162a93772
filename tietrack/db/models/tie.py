"""Tie model for inventory records."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from tietrack.db.base import Base, fold_key, utcnow


class Tie(Base):
    """One necktie in the inventory."""

    __tablename__ = "ties"

    # Primary key, assigned by the store and never changed afterwards
    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # Record data
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    value_in_quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Category by name only; NULL and "" are legacy forms of the sentinel
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    image_url: Mapped[str] = mapped_column(String(1024), nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_ties_category", "category"),
        Index("ix_ties_name_key", "name_key"),
    )

    @validates("name")
    def _sync_name_key(self, key: str, value: str) -> str:
        self.name_key = fold_key(value)
        return value

    def __repr__(self) -> str:
        return f"<Tie(id={self.id}, name={self.name!r}, category={self.category!r})>"
