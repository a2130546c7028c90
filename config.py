"""
Configuration settings for the vocabulary review engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = Path.home() / ".vocab"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    database_url: str = Field(
        default=f"sqlite:///{DEFAULT_DATA_DIR / 'state.db'}",
        description="SQLAlchemy URL for review state (SQLite or PostgreSQL)",
    )
    persistence_outbox_size: int = Field(
        default=0,
        ge=0,
        description="Failed writes kept for retry on the next successful write (0 to disable)",
    )

    # ========================================
    # Catalog & Learner
    # ========================================
    catalog_path: str = Field(
        default="data/words.json",
        description="JSON file with the vocabulary catalog",
    )
    default_user_id: str = Field(
        default="local",
        description="Learner id used when none is given on the command line",
    )

    # ========================================
    # Content Provider (Gemini)
    # ========================================
    gemini_api_key: str | None = Field(
        default=None,
        description="Google Generative AI (Gemini) API key; local exercises only if unset",
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model for exercise generation",
    )
    content_timeout_seconds: float = Field(
        default=8.0,
        gt=0,
        description="Time allowed for content generation before falling back",
    )
    fallback_seed: int | None = Field(
        default=None,
        description="Seed for local exercise shuffling (None for random)",
    )

    # ========================================
    # Scheduling
    # ========================================
    new_item_cap: int = Field(
        default=5,
        ge=0,
        description="Maximum unseen items introduced per session",
    )
    batch_size: int = Field(
        default=10,
        ge=1,
        description="Items per mistake-correction batch",
    )
    batch_max_passes: int | None = Field(
        default=None,
        ge=1,
        description="Stop a batch after this many passes (None for no limit)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Helper Methods
    # ========================================

    def has_ai_configured(self) -> bool:
        """Check if a content provider key is configured."""
        return bool(self.gemini_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
