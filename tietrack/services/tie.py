"""Tie service for reading and writing inventory records."""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tietrack.core.logging import get_logger
from tietrack.db.models import Tie
from tietrack.schemas.tie import (
    UNCATEGORIZED_LABEL,
    TieInput,
    TieRecord,
    canonical_category,
    is_all_categories,
    validate_tie_update,
)

logger = get_logger(__name__)


class TieError(Exception):
    """Base exception for tie operations."""

    pass


class TieNotFoundError(TieError):
    """Raised when a tie id does not exist."""

    def __init__(self, tie_id: str):
        self.tie_id = tie_id
        super().__init__(f"Tie not found: {tie_id}")


def uncategorized_clause():
    """SQL condition matching every stored form of "no category"."""
    return or_(
        Tie.category.is_(None),
        Tie.category == "",
        func.lower(Tie.category) == UNCATEGORIZED_LABEL.lower(),
    )


class TieService:
    """Data access for tie records.

    Categories are written in their canonical form and normalized again on
    read, so rows written before normalization still behave.
    """

    def __init__(self, db: AsyncSession):
        """Initialize the tie service.

        Args:
            db: The database session.
        """
        self.db = db

    async def list_ties(self, category: str | None = None) -> list[TieRecord]:
        """List ties, optionally restricted to one category.

        Args:
            category: ``None`` or "All" for every tie, the uncategorized
                label for ties without a category, otherwise an exact name.

        Returns:
            Records ordered by name.
        """
        query = select(Tie)

        if not is_all_categories(category):
            wanted = canonical_category(category)
            if wanted == UNCATEGORIZED_LABEL:
                query = query.where(uncategorized_clause())
            else:
                query = query.where(Tie.category == wanted)

        query = query.order_by(Tie.name_key, Tie.created_at)

        result = await self.db.execute(query)
        return [TieRecord.model_validate(tie) for tie in result.scalars().all()]

    async def count_ties(self) -> int:
        """Count all stored ties."""
        result = await self.db.execute(select(func.count(Tie.id)))
        return result.scalar() or 0

    async def get_tie(self, tie_id: str) -> TieRecord:
        """Get a single tie.

        Raises:
            TieNotFoundError: If the tie does not exist.
        """
        return TieRecord.model_validate(await self._get(tie_id))

    async def create_tie(self, data: TieInput) -> TieRecord:
        """Create a tie; the store assigns its id.

        Args:
            data: Validated record fields.

        Returns:
            The created record including its new id.
        """
        tie = Tie(
            name=data.name,
            quantity=data.quantity,
            unit_price=data.unit_price,
            value_in_quantity=data.value_in_quantity,
            category=canonical_category(data.category),
            image_url=data.image_url,
        )
        self.db.add(tie)
        await self.db.flush()

        logger.info("tie_created", tie_id=tie.id, name=tie.name, category=tie.category)

        return TieRecord.model_validate(tie)

    async def update_tie(self, tie_id: str, changes: dict[str, Any]) -> TieRecord:
        """Apply a partial update in place.

        Args:
            tie_id: The tie to update.
            changes: Raw field values; validated here, ``id`` is ignored.

        Returns:
            The updated record.

        Raises:
            TieNotFoundError: If the tie does not exist.
            TieValidationError: If a supplied value is invalid.
        """
        values = validate_tie_update(changes)
        tie = await self._get(tie_id)

        for field, value in values.items():
            setattr(tie, field, value)

        await self.db.flush()
        await self.db.refresh(tie)

        logger.info("tie_updated", tie_id=tie_id, fields=sorted(values))

        return TieRecord.model_validate(tie)

    async def delete_tie(self, tie_id: str) -> TieRecord:
        """Delete a tie.

        Returns:
            The record as it was before deletion.

        Raises:
            TieNotFoundError: If the tie does not exist.
        """
        tie = await self._get(tie_id)
        record = TieRecord.model_validate(tie)

        await self.db.delete(tie)
        await self.db.flush()

        logger.info("tie_deleted", tie_id=tie_id, name=record.name)

        return record

    async def rename_category(self, old_name: str, new_name: str) -> int:
        """Move every tie from one category name to another.

        Returns:
            Number of ties relabelled.
        """
        old = canonical_category(old_name)
        new = canonical_category(new_name)
        if old == new:
            return 0

        condition = uncategorized_clause() if old == UNCATEGORIZED_LABEL else Tie.category == old
        result = await self.db.execute(
            update(Tie).where(condition).values(category=new)
        )
        await self.db.flush()

        count = result.rowcount or 0
        logger.info("ties_recategorized", old=old, new=new, count=count)
        return count

    async def _get(self, tie_id: str) -> Tie:
        tie = await self.db.get(Tie, tie_id)
        if tie is None:
            raise TieNotFoundError(tie_id)
        return tie
