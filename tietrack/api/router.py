"""API router that aggregates all routes."""

from fastapi import APIRouter, Depends

from tietrack.api.deps import require_session
from tietrack.api.routes import auth, categories, health, ties

api_router = APIRouter(prefix="/api")

# Open routes
api_router.include_router(health.router)
api_router.include_router(auth.router)

# V1 API routes, all behind the session gate
v1_router = APIRouter(prefix="/v1", dependencies=[Depends(require_session)])
v1_router.include_router(categories.router)
v1_router.include_router(ties.router)

api_router.include_router(v1_router)
