"""
Configuration and settings for the lorekeeper service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")
    log_level: str = Field(default="INFO")

    # S3-compatible object storage
    s3_bucket_name: Optional[str] = Field(default=None)
    aws_region: Optional[str] = Field(default=None)
    aws_endpoint_url: Optional[str] = Field(
        default=None, validation_alias="AWS_ENDPOINT_URL_S3"
    )
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    public_base_url: Optional[str] = Field(default=None)

    # HTTP surface
    bearer_token: Optional[str] = Field(default=None)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    use_conditional_writes: bool = Field(default=False)

    # Credentials
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    min_secret_length: int = Field(default=4, ge=1)

    # Fan-out width for parallel blob store calls within one operation
    max_workers: int = Field(default=8, ge=1)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
