"""Tie API endpoints: list, live stream, dialog, create, edit, delete."""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Body, Depends, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.datastructures import UploadFile as StarletteUploadFile

from tietrack.api.deps import require_session
from tietrack.core.logging import get_logger
from tietrack.db import get_db, get_session_factory
from tietrack.schemas.tie import TieRecord, TieValidationError
from tietrack.services.category import CategoryError
from tietrack.services.events import (
    ChangeBroadcaster,
    Event,
    EventType,
    get_change_broadcaster,
)
from tietrack.services.form import (
    ImageUpload,
    TieFormState,
    build_image_preview,
    finalize_submission,
)
from tietrack.services.image import (
    ImageError,
    ImageStore,
    ImageValidationError,
    get_image_store,
)
from tietrack.services.inventory import InventoryService
from tietrack.services.live_query import LiveTieView, TieListSnapshot, TieQuery, run_query
from tietrack.services.tie import TieNotFoundError, TieService

logger = get_logger(__name__)

router = APIRouter(prefix="/ties", tags=["ties"])

# Fields read from the add/edit form
FORM_FIELDS = ("name", "quantity", "unit_price", "value_in_quantity", "category", "image_url")

HEARTBEAT_INTERVAL = 30  # seconds


class PreviewResponse(BaseModel):
    """Data URL of a locally selected image."""

    preview_url: str


class TieDeleteResponse(BaseModel):
    """Response after deleting a tie."""

    id: str
    name: str
    message: str


def _validation_error(e: TieValidationError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail=[error.model_dump() for error in e.errors],
    )


async def _read_tie_form(request: Request) -> tuple[dict[str, Any], ImageUpload | None, str | None]:
    """Split a multipart dialog submission into fields, file and inline category."""
    form = await request.form()

    raw = {key: form.get(key) for key in FORM_FIELDS if key in form}

    image = None
    upload = form.get("image")
    if isinstance(upload, StarletteUploadFile) and upload.filename:
        data = await upload.read()
        if data:
            image = ImageUpload(
                data=data,
                filename=upload.filename,
                content_type=upload.content_type,
            )

    new_category = form.get("new_category")
    if not isinstance(new_category, str):
        new_category = None

    return raw, image, new_category


async def _save(
    service: InventoryService,
    request: Request,
    owner_id: str,
    tie_id: str | None = None,
) -> TieRecord:
    previous_image_url = None
    if tie_id is not None:
        try:
            previous_image_url = (await service.ties.get_tie(tie_id)).image_url
        except TieNotFoundError:
            raise HTTPException(status_code=404, detail="Tie not found")

    raw, image, new_category = await _read_tie_form(request)

    try:
        submission = finalize_submission(
            raw,
            image=image,
            tie_id=tie_id,
            previous_image_url=previous_image_url,
            new_category=new_category,
        )
        return await service.submit(submission, owner_id=owner_id)
    except TieValidationError as e:
        raise _validation_error(e)
    except CategoryError as e:
        raise HTTPException(status_code=422, detail=[{"field": "category", "message": str(e)}])
    except TieNotFoundError:
        raise HTTPException(status_code=404, detail="Tie not found")
    except ImageValidationError as e:
        raise HTTPException(status_code=422, detail=[{"field": "image", "message": str(e)}])
    except ImageError as e:
        logger.error("tie_image_store_failed", tie_id=tie_id, error=str(e))
        raise HTTPException(status_code=502, detail=str(e))


# =============================================================================
# List Endpoints
# =============================================================================


@router.get("", response_model=TieListSnapshot)
async def list_ties(
    category: str | None = Query(None, description="Category filter; All or empty for every tie"),
    search: str = Query("", description="Case-insensitive name substring"),
    db: AsyncSession = Depends(get_db),
):
    """List ties matching the filters once."""
    query = TieQuery(category=category, search=search)
    try:
        return await run_query(db, query)
    except SQLAlchemyError as e:
        logger.error("tie_list_failed", category=category, error=str(e))
        return JSONResponse(
            status_code=503,
            content=TieListSnapshot.failed(query).model_dump(mode="json"),
        )


@router.get("/stream")
async def stream_ties(
    category: str | None = Query(None, description="Category filter; All or empty for every tie"),
    search: str = Query("", description="Case-insensitive name substring"),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    broadcaster: ChangeBroadcaster = Depends(get_change_broadcaster),
):
    """Live list as Server-Sent Events.

    Sends a ``snapshot`` event with state ``loading``, then one with the
    results, then a new one after every change to the inventory. To change
    filters, close the stream and open a new one.
    """

    async def event_generator():
        snapshots: asyncio.Queue[TieListSnapshot] = asyncio.Queue()

        async with LiveTieView(session_factory, snapshots.put, broadcaster) as view:
            await view.set_filters(category=category, search=search)

            while True:
                try:
                    snapshot = await asyncio.wait_for(
                        snapshots.get(),
                        timeout=HEARTBEAT_INTERVAL,
                    )
                    yield snapshot.to_event().to_sse()

                except asyncio.TimeoutError:
                    yield Event(
                        type=EventType.HEARTBEAT,
                        payload={"message": "ping"},
                    ).to_sse()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# =============================================================================
# Dialog Endpoints
# =============================================================================


@router.get("/form", response_model=TieFormState)
async def open_tie_form(
    tie_id: str | None = Query(None, description="Tie to edit; omit to add a new one"),
    db: AsyncSession = Depends(get_db),
) -> TieFormState:
    """Initial values for the add/edit dialog."""
    try:
        return await InventoryService(db).open_form(tie_id)
    except TieNotFoundError:
        raise HTTPException(status_code=404, detail="Tie not found")


@router.post("/preview", response_model=PreviewResponse)
async def preview_image(
    image: UploadFile = File(..., description="Image selected in the dialog"),
) -> PreviewResponse:
    """Render a selected image for display without storing it."""
    data = await image.read()
    try:
        return PreviewResponse(preview_url=build_image_preview(data))
    except ImageValidationError as e:
        raise HTTPException(status_code=422, detail=[{"field": "image", "message": str(e)}])


# =============================================================================
# Record Endpoints
# =============================================================================


@router.get("/{tie_id}", response_model=TieRecord)
async def get_tie(
    tie_id: str,
    db: AsyncSession = Depends(get_db),
) -> TieRecord:
    """Get a single tie."""
    try:
        return await TieService(db).get_tie(tie_id)
    except TieNotFoundError:
        raise HTTPException(status_code=404, detail="Tie not found")


@router.post("", response_model=TieRecord, status_code=201)
async def create_tie(
    request: Request,
    username: str = Depends(require_session),
    db: AsyncSession = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
    broadcaster: ChangeBroadcaster = Depends(get_change_broadcaster),
) -> TieRecord:
    """Add a tie from the dialog (multipart form).

    Fields: name, quantity, unit_price, value_in_quantity, category,
    image_url, new_category, and an optional ``image`` file.
    """
    service = InventoryService(db, image_store=image_store, broadcaster=broadcaster)
    return await _save(service, request, owner_id=username)


@router.put("/{tie_id}", response_model=TieRecord)
async def edit_tie(
    tie_id: str,
    request: Request,
    username: str = Depends(require_session),
    db: AsyncSession = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
    broadcaster: ChangeBroadcaster = Depends(get_change_broadcaster),
) -> TieRecord:
    """Save the edit dialog (multipart form, same fields as create)."""
    service = InventoryService(db, image_store=image_store, broadcaster=broadcaster)
    return await _save(service, request, owner_id=username, tie_id=tie_id)


@router.patch("/{tie_id}", response_model=TieRecord)
async def patch_tie(
    tie_id: str,
    changes: dict[str, Any] = Body(..., description="Fields to change"),
    db: AsyncSession = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
    broadcaster: ChangeBroadcaster = Depends(get_change_broadcaster),
) -> TieRecord:
    """Change some fields of a tie. The id never changes."""
    service = InventoryService(db, image_store=image_store, broadcaster=broadcaster)
    try:
        return await service.patch(tie_id, changes)
    except TieNotFoundError:
        raise HTTPException(status_code=404, detail="Tie not found")
    except TieValidationError as e:
        raise _validation_error(e)
    except CategoryError as e:
        raise HTTPException(status_code=422, detail=[{"field": "category", "message": str(e)}])


@router.delete("/{tie_id}", response_model=TieDeleteResponse)
async def delete_tie(
    tie_id: str,
    db: AsyncSession = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
    broadcaster: ChangeBroadcaster = Depends(get_change_broadcaster),
) -> TieDeleteResponse:
    """Delete a tie and its stored image."""
    service = InventoryService(db, image_store=image_store, broadcaster=broadcaster)
    try:
        record = await service.delete(tie_id)
    except TieNotFoundError:
        raise HTTPException(status_code=404, detail="Tie not found")

    return TieDeleteResponse(
        id=record.id,
        name=record.name,
        message=f"{record.name} was removed.",
    )
