"""Category API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from tietrack.core.logging import get_logger
from tietrack.db import get_db
from tietrack.schemas.category import (
    CategoryCreateRequest,
    CategoryDeleteResponse,
    CategoryListResponse,
    CategoryResponse,
    CategoryUpdateRequest,
)
from tietrack.services.category import (
    CategoryExistsError,
    CategoryNotFoundError,
    CategoryService,
    CategoryValidationError,
)
from tietrack.services.events import ChangeBroadcaster, get_change_broadcaster

logger = get_logger(__name__)

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=CategoryListResponse)
async def list_categories(
    db: AsyncSession = Depends(get_db),
) -> CategoryListResponse:
    """List categories and the filter tabs built from them."""
    service = CategoryService(db)
    categories = await service.list_categories()

    return CategoryListResponse(
        items=[CategoryResponse.model_validate(c) for c in categories],
        total=len(categories),
        filters=await service.filter_options(),
    )


@router.post("", response_model=CategoryResponse, status_code=201)
async def create_category(
    request: CategoryCreateRequest,
    db: AsyncSession = Depends(get_db),
    broadcaster: ChangeBroadcaster = Depends(get_change_broadcaster),
) -> CategoryResponse:
    """Add a category."""
    try:
        category = await CategoryService(db).create_category(request.name)
    except CategoryValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except CategoryExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))

    await db.commit()
    await broadcaster.broadcast_category_changed("created", category.name)

    return CategoryResponse.model_validate(category)


@router.patch("/{category_id}", response_model=CategoryResponse)
async def rename_category(
    category_id: str,
    request: CategoryUpdateRequest,
    db: AsyncSession = Depends(get_db),
    broadcaster: ChangeBroadcaster = Depends(get_change_broadcaster),
) -> CategoryResponse:
    """Rename a category; ties using the old name follow it."""
    try:
        category = await CategoryService(db).update_category(category_id, request.name)
    except CategoryNotFoundError:
        raise HTTPException(status_code=404, detail="Category not found")
    except CategoryValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except CategoryExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))

    await db.commit()
    await broadcaster.broadcast_category_changed("renamed", category.name)

    return CategoryResponse.model_validate(category)


@router.delete("/{category_id}", response_model=CategoryDeleteResponse)
async def delete_category(
    category_id: str,
    db: AsyncSession = Depends(get_db),
    broadcaster: ChangeBroadcaster = Depends(get_change_broadcaster),
) -> CategoryDeleteResponse:
    """Delete a category. Ties keep the name they already have."""
    try:
        category = await CategoryService(db).delete_category(category_id)
    except CategoryNotFoundError:
        raise HTTPException(status_code=404, detail="Category not found")

    await db.commit()
    await broadcaster.broadcast_category_changed("deleted", category.name)

    return CategoryDeleteResponse(
        id=category.id,
        name=category.name,
        message=f'Category "{category.name}" was removed.',
    )
