"""Category service for managing tie categories."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tietrack.core.logging import get_logger
from tietrack.db.base import fold_key
from tietrack.db.models import Category
from tietrack.schemas.tie import (
    ALL_CATEGORIES_LABEL,
    NAME_MAX_LENGTH,
    UNCATEGORIZED_LABEL,
    canonical_category,
    is_reserved_category,
)
from tietrack.services.tie import TieService

logger = get_logger(__name__)

# Created on first start when the table is empty
DEFAULT_CATEGORIES = ["Solid", "Striped", "Dotted"]


class CategoryError(Exception):
    """Base exception for category operations."""

    pass


class CategoryValidationError(CategoryError):
    """Raised when a category name is empty, too long or reserved."""

    pass


class CategoryExistsError(CategoryError):
    """Raised when a category with the same name already exists."""

    pass


class CategoryNotFoundError(CategoryError):
    """Raised when a category id does not exist."""

    pass


class CategoryService:
    """Service for category names.

    Ties reference categories by name only. Deleting a category leaves the
    ties that use it untouched; renaming relabels them.
    """

    def __init__(self, db: AsyncSession):
        """Initialize the category service.

        Args:
            db: The database session.
        """
        self.db = db

    async def list_categories(self) -> list[Category]:
        """List stored categories ordered by name."""
        result = await self.db.execute(
            select(Category).order_by(Category.name_key)
        )
        return list(result.scalars().all())

    async def list_names(self) -> list[str]:
        """List stored category names ordered by name."""
        return [category.name for category in await self.list_categories()]

    async def filter_options(self) -> list[str]:
        """Get the filter tabs: All, Uncategorized, then every stored name."""
        return [ALL_CATEGORIES_LABEL, UNCATEGORIZED_LABEL, *await self.list_names()]

    async def get_category(self, category_id: str) -> Category:
        """Get a category by id.

        Raises:
            CategoryNotFoundError: If it does not exist.
        """
        category = await self.db.get(Category, category_id)
        if category is None:
            raise CategoryNotFoundError(f"Category not found: {category_id}")
        return category

    async def find_by_name(self, name: str) -> Category | None:
        """Find a category by name, ignoring case."""
        result = await self.db.execute(
            select(Category).where(Category.name_key == fold_key(name))
        )
        return result.scalar_one_or_none()

    async def create_category(self, name: str) -> Category:
        """Create a category.

        Args:
            name: The category name; surrounding whitespace is dropped.

        Returns:
            The new category.

        Raises:
            CategoryValidationError: If the name is empty, too long or reserved.
            CategoryExistsError: If the name exists in any letter case.
        """
        clean = self._validate_name(name)

        if await self.find_by_name(clean) is not None:
            raise CategoryExistsError(f'Category "{clean}" already exists.')

        category = Category(name=clean)
        self.db.add(category)
        await self.db.flush()

        logger.info("category_created", category_id=category.id, name=clean)

        return category

    async def ensure_category(self, name: str | None) -> str:
        """Make sure a category a tie is about to reference exists.

        Args:
            name: Category name as entered on the form.

        Returns:
            The canonical name to store on the tie. The uncategorized label
            is returned as is and never stored as a category.
        """
        canonical = canonical_category(name)
        if canonical == UNCATEGORIZED_LABEL:
            return canonical

        existing = await self.find_by_name(canonical)
        if existing is not None:
            return existing.name

        return (await self.create_category(canonical)).name

    async def update_category(self, category_id: str, name: str) -> Category:
        """Rename a category and relabel the ties that use it.

        Raises:
            CategoryNotFoundError: If the category does not exist.
            CategoryValidationError: If the new name is invalid.
            CategoryExistsError: If another category already has the name.
        """
        category = await self.get_category(category_id)
        clean = self._validate_name(name)

        existing = await self.find_by_name(clean)
        if existing is not None and existing.id != category.id:
            raise CategoryExistsError(f'Category "{clean}" already exists.')

        old_name = category.name
        category.name = clean
        await self.db.flush()

        moved = await TieService(self.db).rename_category(old_name, clean)

        logger.info(
            "category_renamed",
            category_id=category_id,
            old_name=old_name,
            new_name=clean,
            ties_moved=moved,
        )

        return category

    async def delete_category(self, category_id: str) -> Category:
        """Delete a category. Ties keep their category name.

        Raises:
            CategoryNotFoundError: If the category does not exist.
        """
        category = await self.get_category(category_id)

        await self.db.delete(category)
        await self.db.flush()

        logger.info("category_deleted", category_id=category_id, name=category.name)

        return category

    async def seed_default_categories(self) -> int:
        """Create the default categories when none exist yet.

        Returns:
            Number of categories created.
        """
        count_result = await self.db.execute(select(func.count(Category.id)))
        if (count_result.scalar() or 0) > 0:
            return 0

        for name in DEFAULT_CATEGORIES:
            self.db.add(Category(name=name))
        await self.db.flush()

        logger.info("default_categories_seeded", count=len(DEFAULT_CATEGORIES))

        return len(DEFAULT_CATEGORIES)

    def _validate_name(self, name: str) -> str:
        clean = (name or "").strip()
        if not clean:
            raise CategoryValidationError("Category name cannot be empty.")
        if len(clean) > NAME_MAX_LENGTH:
            raise CategoryValidationError(
                f"Category name must be {NAME_MAX_LENGTH} characters or fewer."
            )
        if is_reserved_category(clean):
            raise CategoryValidationError(f'"{clean}" is reserved and cannot be used as a category.')
        return clean
