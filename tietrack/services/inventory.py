"""Inventory page orchestration.

Wires a dialog submission through category, tie and image storage, commits,
and notifies live views. Writes are committed before the change event goes
out so views re-querying on the event see them.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tietrack.core.logging import get_logger
from tietrack.schemas.tie import (
    PLACEHOLDER_IMAGE_URL,
    UNCATEGORIZED_LABEL,
    TieRecord,
    canonical_category,
    validate_tie_update,
)
from tietrack.services.category import CategoryService
from tietrack.services.events import ChangeBroadcaster, get_change_broadcaster
from tietrack.services.form import TieFormState, TieSubmission, open_form_for
from tietrack.services.image import ImageError, ImageStore, get_image_store
from tietrack.services.tie import TieService

logger = get_logger(__name__)


class InventoryService:
    """Main view actions: open the dialog, save a tie, delete a tie."""

    def __init__(
        self,
        db: AsyncSession,
        image_store: ImageStore | None = None,
        broadcaster: ChangeBroadcaster | None = None,
    ):
        """Initialize the inventory service.

        Args:
            db: The database session.
            image_store: Where tie images go, defaults to the configured store.
            broadcaster: Change feed to notify, defaults to the global one.
        """
        self.db = db
        self.ties = TieService(db)
        self.categories = CategoryService(db)
        self.image_store = image_store or get_image_store()
        self.broadcaster = broadcaster or get_change_broadcaster()

    async def open_form(self, tie_id: str | None = None) -> TieFormState:
        """Dialog state for adding (no id) or editing a tie.

        Raises:
            TieNotFoundError: If ``tie_id`` does not exist.
        """
        existing = await self.ties.get_tie(tie_id) if tie_id else None
        return open_form_for(existing, await self.categories.list_names())

    async def submit(
        self,
        submission: TieSubmission,
        owner_id: str,
    ) -> TieRecord:
        """Save a dialog submission.

        An inline or unknown category is stored before the tie references it.
        When a file was selected it is uploaded after the record has an id
        and the record is pointed at the stored image.

        Args:
            submission: Validated dialog output.
            owner_id: User the image is stored under.

        Returns:
            The saved record.

        Raises:
            TieNotFoundError: If the edited tie no longer exists.
            CategoryError: If the inline category cannot be stored.
            ImageError: If the image cannot be stored; nothing is committed.
        """
        stored_image_url = None
        if submission.is_edit:
            stored_image_url = (await self.ties.get_tie(submission.tie_id)).image_url

        values = submission.values.model_copy()
        values.category = await self.categories.ensure_category(values.category)

        # Files in the store belong to one tie; a submitted URL may only keep it
        if self.image_store.owns_url(values.image_url) and values.image_url != stored_image_url:
            logger.warning(
                "foreign_image_url_rejected",
                tie_id=submission.tie_id,
                url=values.image_url,
            )
            values.image_url = stored_image_url or PLACEHOLDER_IMAGE_URL

        if submission.is_edit:
            record = await self.ties.update_tie(
                submission.tie_id, values.model_dump()
            )
        else:
            record = await self.ties.create_tie(values)

        if submission.image is not None:
            url = await self.image_store.upload_image(
                owner_id,
                submission.image.data,
                submission.image.filename,
                record.id,
                previous_url=stored_image_url,
            )
            record = await self.ties.update_tie(record.id, {"image_url": url})

        await self.db.commit()

        if submission.is_edit:
            await self.broadcaster.broadcast_tie_updated(record.id, record.name, record.category)
        else:
            await self.broadcaster.broadcast_tie_created(record.id, record.name, record.category)
        if submission.new_category:
            await self.broadcaster.broadcast_category_changed("created", record.category)

        logger.info(
            "tie_saved",
            tie_id=record.id,
            is_edit=submission.is_edit,
            has_image=submission.image is not None,
        )

        return record

    async def patch(self, tie_id: str, changes: dict[str, Any]) -> TieRecord:
        """Change some fields of a tie, keeping its id.

        A category not seen before is stored first, as on the dialog.

        Raises:
            TieNotFoundError: If the tie does not exist.
            TieValidationError: If a supplied value is invalid.
            CategoryError: If the new category cannot be stored.
        """
        values = validate_tie_update(changes)
        stored = await self.ties.get_tie(tie_id)

        category_created = False
        if "category" in values:
            canonical = canonical_category(values["category"])
            category_created = (
                canonical != UNCATEGORIZED_LABEL
                and await self.categories.find_by_name(canonical) is None
            )
            values["category"] = await self.categories.ensure_category(canonical)

        image_url = values.get("image_url")
        if self.image_store.owns_url(image_url) and image_url != stored.image_url:
            logger.warning("foreign_image_url_rejected", tie_id=tie_id, url=image_url)
            del values["image_url"]

        record = await self.ties.update_tie(tie_id, values)
        await self.db.commit()

        await self.broadcaster.broadcast_tie_updated(record.id, record.name, record.category)
        if category_created:
            await self.broadcaster.broadcast_category_changed("created", record.category)

        return record

    async def delete(self, tie_id: str) -> TieRecord:
        """Delete a tie and, best effort, its stored image.

        Raises:
            TieNotFoundError: If the tie does not exist.
        """
        record = await self.ties.delete_tie(tie_id)
        await self.db.commit()

        await self.broadcaster.broadcast_tie_deleted(tie_id)

        if not self.image_store.owns_url(record.image_url):
            return record
        try:
            await self.image_store.delete_image(record.image_url)
        except ImageError as e:
            logger.warning("tie_image_cleanup_failed", tie_id=tie_id, error=str(e))

        return record
