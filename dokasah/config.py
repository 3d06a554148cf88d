"""
Configuration and settings for the dokasah backend.

Fields are read from environment variables of the same name (case-insensitive)
or from a local ``.env`` file.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Public host used to build share links: https://{domain}/form/{slug}
    domain: str = Field(default="localhost:3000")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible storage (Backblaze B2)
    b2_endpoint: str = Field(default="https://s3.us-east-005.backblazeb2.com")
    b2_region: str = Field(default="us-east-005")
    b2_bucket: Optional[str] = Field(default=None)
    b2_access_key: Optional[str] = Field(default=None)
    b2_secret_key: Optional[str] = Field(default=None)
    storage_base_prefix: str = Field(default="dokasah/berkas")
    cdn_base_url: str = Field(default="https://cdn.example.com/file/dokasah/")

    # Credentials. JWT_SECRET has no default; startup fails without it.
    jwt_secret: str = Field(min_length=8)
    jwt_algorithm: str = Field(default="HS256")
    token_ttl_seconds: int = Field(default=3600)

    # Form instances
    slug_max_attempts: int = Field(default=5)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "DOKASAH_USE_IN_MEMORY_BACKENDS", "use_in_memory_backends"
        ),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
