"""Application configuration using Pydantic Settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class ProviderEntry(BaseModel):
    """One configured provider account (credentials + wire protocol)."""

    id: str
    name: str
    protocol: str = "google"
    api_key: str = ""
    base_url: str = ""


class Settings(BaseSettings):
    """canvasgen settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "canvasgen"
    DEBUG: bool = False

    # --- Video polling ceiling (120 x 5s ~ 10 min) ---
    VIDEO_POLL_MAX_ATTEMPTS: int = 120
    VIDEO_POLL_INTERVAL: float = 5.0

    # --- Direct Gemini path (no execution backend available) ---
    GEMINI_DIRECT_TIMEOUT: float = 180.0

    # --- Provider accounts and node-type assignment (JSON in env) ---
    PROVIDERS: list[ProviderEntry] = Field(default_factory=list)
    NODE_PROVIDERS: dict[str, str] = Field(default_factory=dict)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
