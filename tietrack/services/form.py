"""Add/edit dialog logic.

The dialog is opened for a new or an existing tie, shows a preview of a
locally selected image without storing it, and turns the submitted fields
into a ``TieSubmission``. Storing the image and the record is left to the
caller (see ``InventoryService``). Cancelling the dialog has no server-side
effect.
"""

from __future__ import annotations

import base64
import io
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from PIL import Image
from pydantic import BaseModel, Field

from tietrack.core.logging import get_logger
from tietrack.schemas.tie import (
    PLACEHOLDER_IMAGE_URL,
    UNCATEGORIZED_LABEL,
    FieldError,
    TieInput,
    TieRecord,
    TieValidationError,
    validate_tie_form,
)
from tietrack.services.image import ImageValidationError, validate_image_bytes

logger = get_logger(__name__)

# Matches the placeholder's 300x400 card
PREVIEW_SIZE = (300, 400)


@dataclass
class ImageUpload:
    """A file chosen in the dialog, not yet stored."""

    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None


class TieFormState(BaseModel):
    """Initial field values of the dialog."""

    tie_id: Optional[str] = None
    name: str = ""
    quantity: int = 0
    unit_price: float = 0.0
    value_in_quantity: float = 0.0
    category: str = UNCATEGORIZED_LABEL
    image_url: str = PLACEHOLDER_IMAGE_URL
    preview_url: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    submit_label: str = "Add Tie"


@dataclass
class TieSubmission:
    """A validated dialog submission handed to the page."""

    values: TieInput
    tie_id: Optional[str] = None
    image: Optional[ImageUpload] = None
    new_category: Optional[str] = None
    stored_image_url: Optional[str] = None

    @property
    def previous_image_url(self) -> Optional[str]:
        """Image URL the stored record had before this submission.

        Taken from the database, never from the submitted fields.
        """
        return self.stored_image_url

    @property
    def is_edit(self) -> bool:
        return self.tie_id is not None


def open_form_for(existing: TieRecord | None, categories: list[str]) -> TieFormState:
    """Build the dialog state for adding or editing a tie.

    Args:
        existing: The tie being edited, or ``None`` to add a new one.
        categories: Known category names in display order.

    Returns:
        Field values to pre-fill.
    """
    default_category = categories[0] if categories else UNCATEGORIZED_LABEL

    if existing is None:
        return TieFormState(category=default_category, categories=categories)

    return TieFormState(
        tie_id=existing.id,
        name=existing.name,
        quantity=existing.quantity,
        unit_price=existing.unit_price,
        value_in_quantity=existing.value_in_quantity or 0.0,
        category=existing.category or default_category,
        image_url=existing.image_url,
        preview_url=existing.image_url,
        categories=categories,
        submit_label="Save Changes",
    )


def build_image_preview(data: bytes) -> str:
    """Render a selected image as a data URL for display.

    Nothing is stored; the result is a downscaled PNG.

    Raises:
        ImageValidationError: If the bytes are not an acceptable image.
    """
    validate_image_bytes(data)

    # verify() leaves the image unusable, so decode again
    with Image.open(io.BytesIO(data)) as img:
        img.thumbnail(PREVIEW_SIZE)
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA")
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")

    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def finalize_submission(
    raw: Mapping[str, Any],
    image: ImageUpload | None = None,
    tie_id: str | None = None,
    previous_image_url: str | None = None,
    new_category: str | None = None,
) -> TieSubmission:
    """Validate a dialog submission.

    Args:
        raw: Submitted field values.
        image: Newly selected file, if any.
        tie_id: Id of the tie being edited, ``None`` when adding.
        previous_image_url: Stored image of the tie being edited; kept
            unless the form names another URL or a new file replaces it.
        new_category: Category typed inline; it wins over ``raw["category"]``.

    Returns:
        The submission with validated values.

    Raises:
        TieValidationError: With every field error, including ``image``.
    """
    fields = dict(raw)

    inline_category = (new_category or "").strip() or None
    if inline_category:
        fields["category"] = inline_category

    if previous_image_url and not str(fields.get("image_url") or "").strip():
        fields["image_url"] = previous_image_url

    errors: list[FieldError] = []
    values: TieInput | None = None
    try:
        values = validate_tie_form(fields)
    except TieValidationError as e:
        errors.extend(e.errors)

    if image is not None and not image.data:
        image = None
    if image is not None:
        try:
            validate_image_bytes(image.data)
        except ImageValidationError as e:
            errors.append(FieldError(field="image", message=str(e)))

    if errors:
        logger.debug("tie_form_rejected", fields=[e.field for e in errors])
        raise TieValidationError(errors)

    return TieSubmission(
        values=values,
        tie_id=tie_id,
        image=image,
        new_category=inline_category,
        stored_image_url=previous_image_url if tie_id is not None else None,
    )
