"""Import of the old browser-local inventory snapshot.

Before records moved to the database, the whole inventory lived in browser
local storage as two JSON arrays: ties (camelCase keys, client-generated
ids, images as data URLs) and category names. This module moves such a
snapshot into the database once; the database is the only store afterwards.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tietrack.core.logging import get_logger
from tietrack.db.base import fold_key
from tietrack.db.models import Tie
from tietrack.schemas.tie import (
    PLACEHOLDER_IMAGE_URL,
    TieValidationError,
    is_reserved_category,
    validate_tie_form,
)
from tietrack.services.category import CategoryError, CategoryService
from tietrack.services.tie import TieService

logger = get_logger(__name__)

# Snapshot key -> TieInput field
LEGACY_FIELD_MAP = {
    "name": "name",
    "quantity": "quantity",
    "unitPrice": "unit_price",
    "valueInQuantity": "value_in_quantity",
    "category": "category",
    "imageUrl": "image_url",
}


@dataclass
class ImportStats:
    """Track import statistics."""

    ties_seen: int = 0
    ties_created: int = 0
    ties_skipped: int = 0
    categories_created: int = 0
    errors: list[str] = field(default_factory=list)


def convert_legacy_tie(item: Mapping[str, Any]) -> dict[str, Any]:
    """Map a snapshot record onto form fields.

    Data-URL images cannot be carried over and fall back to the placeholder.
    """
    fields = {target: item.get(source) for source, target in LEGACY_FIELD_MAP.items()}
    image_url = fields.get("image_url")
    if not isinstance(image_url, str) or not image_url.startswith(("http://", "https://")):
        fields["image_url"] = PLACEHOLDER_IMAGE_URL
    return fields


async def import_legacy_snapshot(
    db: AsyncSession,
    ties: Iterable[Mapping[str, Any]],
    categories: Iterable[str] = (),
    dry_run: bool = False,
) -> ImportStats:
    """Import a local-storage snapshot.

    Ties whose name already exists (ignoring case) are skipped, so running
    the import twice is harmless.

    Args:
        db: The database session. The caller commits.
        ties: Snapshot tie records.
        categories: Snapshot category names.
        dry_run: Validate and count without writing.

    Returns:
        Import statistics.
    """
    stats = ImportStats()
    category_service = CategoryService(db)
    tie_service = TieService(db)

    # fold_key -> first spelling seen
    wanted_categories: dict[str, str] = {}
    for name in categories:
        if name and name.strip():
            wanted_categories.setdefault(fold_key(name), name.strip())

    converted = []
    for item in ties:
        stats.ties_seen += 1
        fields = convert_legacy_tie(item)
        try:
            values = validate_tie_form(fields)
        except TieValidationError as e:
            label = item.get("name") or item.get("id") or f"#{stats.ties_seen}"
            stats.errors.append(f"{label}: " + "; ".join(err.message for err in e.errors))
            continue
        converted.append(values)
        wanted_categories.setdefault(fold_key(values.category), values.category)

    for name in sorted(wanted_categories.values(), key=fold_key):
        if is_reserved_category(name):
            continue
        if await category_service.find_by_name(name) is not None:
            continue
        if dry_run:
            stats.categories_created += 1
            continue
        try:
            await category_service.create_category(name)
            stats.categories_created += 1
        except CategoryError as e:
            stats.errors.append(f"category {name}: {e}")

    seen: set[str] = set()
    for values in converted:
        key = fold_key(values.name)
        if key in seen:
            stats.ties_skipped += 1
            continue
        seen.add(key)
        result = await db.execute(select(Tie.id).where(Tie.name_key == key))
        if result.first() is not None:
            stats.ties_skipped += 1
            continue
        if not dry_run:
            await tie_service.create_tie(values)
        stats.ties_created += 1

    logger.info(
        "legacy_snapshot_imported",
        dry_run=dry_run,
        ties_seen=stats.ties_seen,
        ties_created=stats.ties_created,
        ties_skipped=stats.ties_skipped,
        categories_created=stats.categories_created,
        errors=len(stats.errors),
    )

    return stats
