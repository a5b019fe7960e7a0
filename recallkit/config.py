"""
Configuration settings for recallkit.

Uses Pydantic Settings for environment variable management with .env file support.
All variables are prefixed with RECALLKIT_ (e.g. RECALLKIT_TIMEZONE=Europe/Berlin).
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RECALLKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".recallkit",
        description="Directory holding the progress database and backups",
    )
    db_filename: str = Field(
        default="progress.db",
        description="SQLite file name inside data_dir",
    )

    # ========================================
    # Calendar
    # ========================================
    timezone: str | None = Field(
        default=None,
        description="IANA timezone for day boundaries (None = system local time)",
    )

    # ========================================
    # Study Sessions
    # ========================================
    new_items_per_session: int = Field(
        default=20,
        ge=0,
        description="Maximum never-studied items added to a session",
    )
    max_due_items: int = Field(
        default=100,
        ge=1,
        description="Maximum due items pulled into a session",
    )
    heatmap_days: int = Field(
        default=84,
        ge=1,
        description="Default heatmap window (12 weeks)",
    )

    # ========================================
    # Catalog
    # ========================================
    content_root: Path = Field(
        default=Path("courses"),
        description="Root directory of authored course content",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Log level for stderr output",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v

    @property
    def db_path(self) -> Path:
        """Full path of the progress database."""
        return self.data_dir / self.db_filename

    @property
    def backup_dir(self) -> Path:
        """Directory for ledger backups written before destructive operations."""
        return self.data_dir / "backups"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
