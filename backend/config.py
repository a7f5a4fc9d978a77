"""
Configuration and settings for the FriendlyEats backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import SESSION_COOKIE_NAME


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Firebase (Firestore, Authentication, Storage)
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_storage_bucket: Optional[str] = Field(default=None)

    # S3-compatible storage, used when no Firebase bucket is configured
    cos_endpoint: Optional[str] = Field(default=None)
    cos_region: Optional[str] = Field(default=None)
    cos_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # LLM / Gemini
    gemini_api_key: Optional[str] = Field(default=None)
    gemini_model: str = Field(default="gemini-2.0-flash")

    # Session cookie mirrored from the identity provider's ID token
    session_cookie_name: str = Field(default=SESSION_COOKIE_NAME)
    session_cookie_secure: bool = Field(default=False)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    sample_restaurant_count: int = Field(default=20, ge=1, le=200)
    live_keepalive_seconds: float = Field(default=15.0, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
