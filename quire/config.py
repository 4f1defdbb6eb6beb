"""Configuration settings for quire."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_cache_dir() -> Path:
    return Path.home() / ".quire" / "sessions"


class Settings(BaseSettings):
    """Settings loaded from QUIRE_* environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="QUIRE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase
    supabase_url: str | None = None
    supabase_key: str | None = None  # Publishable/anon key; row-level security scopes reads
    entries_table: str = "entries"

    # Sync
    debounce_ms: int = Field(default=1000, ge=0)

    # Session cache
    cache_dir: Path = Field(default_factory=_default_cache_dir)
    session_id: str = "default"

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def has_remote(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
