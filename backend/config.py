from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the backend service.

    Values are sourced from ``CLINIC_``-prefixed environment variables so
    the same build can be used across dev/stage/prod without code changes.
    """

    model_config = SettingsConfigDict(env_prefix="CLINIC_", case_sensitive=False)

    app_name: str = "Clinic Analytics Backend"
    environment: str = "development"
    debug: bool = False

    # Comma-separated list of origins, e.g.
    #   http://localhost:3000,http://127.0.0.1:3000
    cors_allow_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:8501"

    # SQLite database file for dataset snapshots and shared CSV payloads.
    db_path: str = "clinic.db"

    # Prefix for the share URLs returned by POST /api/upload.
    share_base_url: str = "http://localhost:3000"

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance.

    Using lru_cache makes settings effectively a singleton while remaining
    easy to override in tests (``get_settings.cache_clear()``).
    """

    return Settings()
