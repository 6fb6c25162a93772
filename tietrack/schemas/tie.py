"""Pydantic schemas and form validation for tie records."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

# Label shown for ties without a category; never stored as a Category row
UNCATEGORIZED_LABEL = "Uncategorized"

# Pseudo-category selecting every tie
ALL_CATEGORIES_LABEL = "All"

PLACEHOLDER_IMAGE_URL = "https://placehold.co/300x400.png"

NAME_MAX_LENGTH = 100

_NUMERIC_FIELDS = ("quantity", "unit_price", "value_in_quantity")

# One message per field, with per-error-type overrides
FIELD_MESSAGES: dict[str, dict[str, str]] = {
    "name": {
        "default": "Name is required.",
        "string_too_long": f"Name must be {NAME_MAX_LENGTH} characters or fewer.",
    },
    "quantity": {"default": "Quantity must be a non-negative whole number."},
    "unit_price": {"default": "Unit price must be a non-negative number."},
    "value_in_quantity": {"default": "Value in quantity must be a non-negative number."},
    "category": {
        "default": "Category must be text.",
        "string_too_long": f"Category must be {NAME_MAX_LENGTH} characters or fewer.",
    },
    "image_url": {"default": "Invalid image URL."},
}


def canonical_category(value: Optional[str]) -> str:
    """Collapse every "no category" form to the uncategorized label.

    ``None``, the empty string, whitespace and the label itself (in any
    case) all mean the same thing.
    """
    if value is None:
        return UNCATEGORIZED_LABEL
    stripped = value.strip()
    if not stripped or stripped.casefold() == UNCATEGORIZED_LABEL.casefold():
        return UNCATEGORIZED_LABEL
    return stripped


def is_all_categories(value: Optional[str]) -> bool:
    """Check whether a category filter means "no restriction"."""
    return value is None or not value.strip() or value.strip().casefold() == ALL_CATEGORIES_LABEL.casefold()


def is_reserved_category(name: str) -> bool:
    """Names that are filters rather than storable categories."""
    folded = name.strip().casefold()
    return folded in (UNCATEGORIZED_LABEL.casefold(), ALL_CATEGORIES_LABEL.casefold())


class FieldError(BaseModel):
    """A single field-level validation problem."""

    field: str
    message: str


class TieValidationError(Exception):
    """Form input failed validation.

    Carries one ``FieldError`` per violated field.
    """

    def __init__(self, errors: list[FieldError]):
        self.errors = errors
        fields = ", ".join(e.field for e in errors)
        super().__init__(f"Invalid tie data: {fields}")


class _TieFieldRules(BaseModel):
    """Coercion rules shared by full and partial tie input."""

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator(*_NUMERIC_FIELDS, mode="before", check_fields=False)
    @classmethod
    def _blank_number_is_zero(cls, value: Any) -> Any:
        if value is None:
            return 0
        if isinstance(value, str):
            value = value.strip()
            return value or 0
        return value

    @field_validator("category", mode="before", check_fields=False)
    @classmethod
    def _normalize_category(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return canonical_category(value)
        return value

    @field_validator("image_url", mode="before", check_fields=False)
    @classmethod
    def _default_image(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return PLACEHOLDER_IMAGE_URL
        return value

    @field_validator("image_url", check_fields=False)
    @classmethod
    def _http_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("not an http(s) URL")
        return value


class TieInput(_TieFieldRules):
    """A complete, validated tie record without an identifier."""

    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    quantity: int = Field(0, ge=0)
    unit_price: float = Field(0.0, ge=0, allow_inf_nan=False)
    value_in_quantity: float = Field(0.0, ge=0, allow_inf_nan=False)
    category: str = Field(UNCATEGORIZED_LABEL, max_length=NAME_MAX_LENGTH)
    image_url: str = PLACEHOLDER_IMAGE_URL


class TieUpdate(_TieFieldRules):
    """Partial tie input; only the supplied fields are validated and applied."""

    name: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX_LENGTH)
    quantity: Optional[int] = Field(None, ge=0)
    unit_price: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    value_in_quantity: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    category: Optional[str] = Field(None, max_length=NAME_MAX_LENGTH)
    image_url: Optional[str] = None


class TieRecord(BaseModel):
    """A stored tie as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    quantity: int
    unit_price: float
    value_in_quantity: float = 0.0
    category: str = UNCATEGORIZED_LABEL
    image_url: str = PLACEHOLDER_IMAGE_URL
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: Any) -> str:
        return canonical_category(value)

    @field_validator("value_in_quantity", mode="before")
    @classmethod
    def _missing_value_is_zero(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @field_validator("image_url", mode="before")
    @classmethod
    def _missing_image_is_placeholder(cls, value: Any) -> Any:
        return value or PLACEHOLDER_IMAGE_URL


def _field_errors(exc: ValidationError) -> list[FieldError]:
    """Turn pydantic errors into one human-readable error per field."""
    errors: list[FieldError] = []
    seen: set[str] = set()
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "__root__"
        if field in seen:
            continue
        seen.add(field)
        messages = FIELD_MESSAGES.get(field, {})
        message = messages.get(error["type"]) or messages.get("default") or error["msg"]
        errors.append(FieldError(field=field, message=message))
    return errors


def validate_tie_form(raw: Mapping[str, Any]) -> TieInput:
    """Validate raw form input into a complete tie.

    Args:
        raw: Field values as submitted, numbers possibly as strings.

    Returns:
        The validated record.

    Raises:
        TieValidationError: With one error for every violated field.
    """
    try:
        return TieInput.model_validate(dict(raw))
    except ValidationError as e:
        raise TieValidationError(_field_errors(e)) from e


def validate_tie_update(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a partial update, returning only the supplied fields.

    Unknown keys, including ``id``, are ignored.
    """
    try:
        update = TieUpdate.model_validate(dict(raw))
    except ValidationError as e:
        raise TieValidationError(_field_errors(e)) from e
    values = update.model_dump(exclude_unset=True)
    if values.get("name", "") is None:
        raise TieValidationError([FieldError(field="name", message=FIELD_MESSAGES["name"]["default"])])
    return values
