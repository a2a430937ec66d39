"""
Configuration module for the PhotoPoet backend.

This module handles all environment variable loading and configuration settings.
All external dependencies (API keys, model names, endpoints) are configured here.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All sensitive values and external endpoints should be configured
    via environment variables or a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ==========================================================================
    # APPLICATION SETTINGS
    # ==========================================================================

    APP_NAME: str = "PhotoPoet Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # "development" shows manual poem editing and the refine panel,
    # anything else is treated as production.
    APP_ENV: str = "production"

    # ==========================================================================
    # GENERATION BACKEND (OpenAI) SETTINGS
    # ==========================================================================

    # Required for every generation call. Without it the service raises
    # GenerationConnectionError on first use.
    OPENAI_API_KEY: Optional[str] = None

    # Optional override for OpenAI-compatible gateways
    OPENAI_BASE_URL: Optional[str] = None

    # Vision-capable chat model used for photo -> text and refinement
    TEXT_MODEL: str = "gpt-4o"

    # Text -> image model
    IMAGE_MODEL: str = "dall-e-3"

    # Model used to edit the shareable template in place
    IMAGE_EDIT_MODEL: str = "gpt-image-1"

    IMAGE_SIZE: str = "1024x1024"

    # Timeout for a single generation round trip (in seconds).
    # None waits until the backend answers.
    GENERATION_TIMEOUT: Optional[float] = None

    # ==========================================================================
    # POEM PRESENTATION SETTINGS
    # ==========================================================================

    # Appended to every generated or refined poem
    ATTRIBUTION: str = "~Satyam mishra"

    # Typewriter reveal speed: one character per interval
    REVEAL_INTERVAL_MS: int = 25

    # Shown in photo-to-text mode before anything is uploaded
    PLACEHOLDER_IMAGE_URL: Optional[str] = (
        "https://images.unsplash.com/photo-1500530855697-b586d89ba3ee"
    )

    # ==========================================================================
    # SESSION / UPLOAD LIMITS
    # ==========================================================================

    # Also caps remote template downloads
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Comma separated hosts shareable templates may be fetched from.
    # Empty means templates must be sent as data URIs.
    TEMPLATE_ALLOWED_HOSTS: str = ""

    # Oldest sessions are evicted beyond this count
    SESSION_LIMIT: int = 500

    # ==========================================================================
    # CORS SETTINGS
    # ==========================================================================

    # Comma separated list, e.g. "https://photopoet.app,https://www.photopoet.app"
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS string into a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def template_allowed_hosts_list(self) -> list[str]:
        """Parse TEMPLATE_ALLOWED_HOSTS string into a list of lowercase hosts."""
        return [host.strip().lower() for host in self.TEMPLATE_ALLOWED_HOSTS.split(",") if host.strip()]

    @property
    def is_development(self) -> bool:
        """True when development-only controls should be exposed."""
        return self.APP_ENV.strip().lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once
    and reused across the application.

    Returns:
        Settings: The application settings instance
    """
    return Settings()
