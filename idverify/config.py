"""
Configuration and settings for the verification backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")

    # Record store: "json" (data_file), "memory" or "sql" (database_url)
    record_store: Literal["json", "memory", "sql"] = Field(default="json")
    data_file: str = Field(default="data.json")
    database_url: Optional[str] = Field(default=None)

    # S3-compatible image storage
    s3_bucket: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_endpoint: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    image_folder: str = Field(default="swift_verifications")
    image_public_base_url: Optional[str] = Field(default=None)

    # Review dashboard. Access is refused while unset.
    admin_key: Optional[str] = Field(default=None)

    cors_origins: list[str] = Field(default_factory=list)
    max_image_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    log_level: str = Field(default="INFO")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
