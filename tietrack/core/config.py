"""Application configuration using pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TIETRACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "TieTrack"
    version: str = "0.1.0"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=3333, description="Server port")

    # Paths
    config_path: Path = Field(
        default=Path("/config"),
        description="Path for the database file",
    )
    media_path: Path = Field(
        default=Path("/media"),
        description="Root directory of the image object store",
    )
    public_base_url: str = Field(
        default="http://localhost:3333",
        description="Externally reachable base URL used to build image URLs",
    )

    # CORS
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins",
    )

    # Session gate
    auth_username: str = Field(
        default="admin",
        description="The single account allowed to log in",
    )
    auth_password: str = Field(
        default="tietrack",
        description="Password for the single account",
    )
    session_ttl_hours: int = Field(
        default=24,
        ge=1,
        le=24 * 30,
        description="Lifetime of an issued session token in hours",
    )
    session_cookie_name: str = "tietrack_session"
    session_cookie_secure: bool = False

    # Images
    image_max_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum accepted image upload size in MB",
    )

    # Categories
    seed_default_categories: bool = Field(
        default=True,
        description="Create the default categories on startup when none exist",
    )

    @property
    def db_path(self) -> Path:
        """Get the SQLite database file path."""
        return self.config_path / "tietrack.db"

    @property
    def media_url_prefix(self) -> str:
        """Get the URL prefix under which stored images are served."""
        return f"{self.public_base_url.rstrip('/')}/media/"


# Global settings instance
settings = Settings()
