"""Centralized application configuration."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="NOTEGRAPH_", env_file=".env", extra="ignore"
    )

    # Data storage path (one JSON file per collection)
    data_path: Path = Path("data")
    log_level: str = "INFO"

    # Audit heuristics
    stale_after_days: int = 30
    recent_activity_hours: int = 24

    # Duplicate note surfacing (dashboard nudge vs. exhaustive review)
    dashboard_similarity_threshold: float = 0.4
    review_similarity_threshold: float = 0.6
    dashboard_duplicate_limit: int = 3

    # Suggestions
    suggestion_limit: int = 3
    pattern_min_notes: int = 3
    pattern_min_word_length: int = 4

    # Related notes shown while reviewing a fresh analysis
    related_note_limit: int = 4


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
