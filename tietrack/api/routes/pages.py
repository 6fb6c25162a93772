"""Login and inventory views.

Both serve the built frontend when it exists. Without a login the inventory
view redirects to the login view, and the login view redirects to the
inventory once a session exists.
"""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse, Response

from tietrack.api.deps import get_current_user

# Built frontend, served when present
FRONTEND_DIR = Path(__file__).resolve().parents[3] / "frontend" / "dist"

router = APIRouter(tags=["pages"])


def _render(view: str, username: str | None = None) -> Response:
    index = FRONTEND_DIR / "index.html"
    if index.exists():
        return FileResponse(index)
    return JSONResponse({"view": view, "username": username})


@router.get("/", include_in_schema=False)
async def inventory_page(username: str | None = Depends(get_current_user)) -> Response:
    """Main inventory view; requires a session."""
    if username is None:
        return RedirectResponse("/login", status_code=303)
    return _render("inventory", username)


@router.get("/login", include_in_schema=False)
async def login_page(username: str | None = Depends(get_current_user)) -> Response:
    """Login view; skipped when already logged in."""
    if username is not None:
        return RedirectResponse("/", status_code=303)
    return _render("login")
