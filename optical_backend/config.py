"""
Configuration and settings for the optical shop backend.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_prefix="OPTICAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_prefix: str = Field(default="/api")

    # Flat JSON collections (frames.json, inquiries.json, ...)
    data_dir: str = Field(default="data")

    # Uploaded images, one subdirectory per folder, served at images_url_prefix
    images_dir: str = Field(default="images")
    images_url_prefix: str = Field(default="/images")
    max_upload_bytes: int = Field(default=10 * 1024 * 1024)

    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
