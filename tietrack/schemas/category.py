"""Pydantic schemas for Category API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CategoryResponse(BaseModel):
    """A stored category."""

    model_config = {"from_attributes": True}

    id: str
    name: str
    created_at: datetime | None = None


class CategoryListResponse(BaseModel):
    """Stored categories plus the filter tabs derived from them."""

    items: list[CategoryResponse]
    total: int
    filters: list[str] = Field(
        default_factory=list,
        description="Filter options in display order: All, Uncategorized, then names",
    )


class CategoryCreateRequest(BaseModel):
    """Request to create a category."""

    name: str = Field(..., min_length=1, max_length=100)


class CategoryUpdateRequest(BaseModel):
    """Request to rename a category."""

    name: str = Field(..., min_length=1, max_length=100)


class CategoryDeleteResponse(BaseModel):
    """Response after deleting a category."""

    id: str
    name: str
    message: str
