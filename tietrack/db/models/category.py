"""Category model for grouping ties."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from tietrack.db.base import Base, fold_key, utcnow


class Category(Base):
    """A named category. Ties reference it by name, without a foreign key."""

    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    # Case-folded name; duplicates are detected on this column
    name_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    @validates("name")
    def _sync_name_key(self, key: str, value: str) -> str:
        self.name_key = fold_key(value)
        return value
