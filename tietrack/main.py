"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from tietrack.api.router import api_router
from tietrack.api.routes import pages
from tietrack.core.config import settings
from tietrack.core.logging import get_logger, setup_logging
from tietrack.db import async_session_maker, init_db
from tietrack.services.auth import AuthService
from tietrack.services.category import CategoryService

# Initialize logging
setup_logging()
logger = get_logger(__name__)


async def bootstrap() -> None:
    """Prepare storage: tables, media directory, default categories, stale sessions."""
    await init_db()
    settings.media_path.mkdir(parents=True, exist_ok=True)

    async with async_session_maker() as session:
        if settings.seed_default_categories:
            await CategoryService(session).seed_default_categories()
        await AuthService(session).purge_expired()
        await session.commit()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.version,
        host=settings.host,
        port=settings.port,
    )
    await bootstrap()
    yield
    logger.info("shutting_down_application")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Inventory tracking for a necktie collection",
        version=settings.version,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    app.include_router(pages.router)

    # Stored tie images; check_dir=False so the app imports before bootstrap
    app.mount(
        "/media",
        StaticFiles(directory=str(settings.media_path), check_dir=False),
        name="media",
    )

    assets_dir = pages.FRONTEND_DIR / "assets"
    if assets_dir.exists():
        app.mount("/assets", StaticFiles(directory=str(assets_dir)), name="assets")

    return app


# Create the application instance
app = create_app()


def main() -> None:
    """Run the application with uvicorn."""
    import uvicorn

    uvicorn.run(
        "tietrack.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
