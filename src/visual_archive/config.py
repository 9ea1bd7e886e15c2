from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_UPLOAD_URL_TTL_SECONDS = 60
MAX_UPLOAD_URL_TTL_SECONDS = 15 * 60


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class ArchiveSettings(BaseModel):
    """Runtime configuration for the archive service (authorizer + catalog)."""

    model_config = ConfigDict(validate_default=True)

    s3_endpoint: str = Field(default_factory=lambda: os.getenv("ARCHIVE_S3_ENDPOINT", ""))
    s3_access_key: str = Field(default_factory=lambda: os.getenv("ARCHIVE_S3_ACCESS_KEY", ""))
    s3_secret_key: str = Field(default_factory=lambda: os.getenv("ARCHIVE_S3_SECRET_KEY", ""))
    s3_bucket: str = Field(default_factory=lambda: os.getenv("ARCHIVE_S3_BUCKET", ""))
    s3_region: Optional[str] = Field(default_factory=lambda: os.getenv("ARCHIVE_S3_REGION") or None)
    s3_secure: bool = Field(default_factory=lambda: _env_bool("ARCHIVE_S3_SECURE", True))
    public_base_url: str = Field(default_factory=lambda: os.getenv("ARCHIVE_PUBLIC_BASE_URL", ""))
    upload_token: Optional[str] = Field(default_factory=lambda: os.getenv("ARCHIVE_UPLOAD_TOKEN") or None)
    upload_url_ttl_seconds: int = Field(
        default_factory=lambda: int(os.getenv("ARCHIVE_UPLOAD_URL_TTL", "300"))
    )
    catalog_key: str = Field(default_factory=lambda: os.getenv("ARCHIVE_CATALOG_KEY", "catalog.json"))
    catalog_max_attempts: int = Field(
        default_factory=lambda: int(os.getenv("ARCHIVE_CATALOG_MAX_ATTEMPTS", "5")), ge=1
    )
    cors_allow_origins: List[str] = Field(default_factory=lambda: _env_list("ARCHIVE_CORS_ORIGINS", "*"))
    service_name: str = Field(default_factory=lambda: os.getenv("SERVICE_NAME", "visual-archive"))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    @field_validator("upload_url_ttl_seconds")
    @classmethod
    def ttl_in_minutes(cls, value: int) -> int:
        if not MIN_UPLOAD_URL_TTL_SECONDS <= value <= MAX_UPLOAD_URL_TTL_SECONDS:
            raise ValueError(
                f"upload URL TTL must be between {MIN_UPLOAD_URL_TTL_SECONDS} and "
                f"{MAX_UPLOAD_URL_TTL_SECONDS} seconds"
            )
        return value

    def missing_storage_settings(self) -> List[str]:
        required = {
            "ARCHIVE_S3_ENDPOINT": self.s3_endpoint,
            "ARCHIVE_S3_ACCESS_KEY": self.s3_access_key,
            "ARCHIVE_S3_SECRET_KEY": self.s3_secret_key,
            "ARCHIVE_S3_BUCKET": self.s3_bucket,
        }
        return [name for name, value in required.items() if not value]


class IngestSettings(BaseModel):
    """Client-side settings for the ingest CLI."""

    api_url: str = Field(default_factory=lambda: os.getenv("ARCHIVE_API_URL", "http://localhost:8090"))
    upload_token: Optional[str] = Field(default_factory=lambda: os.getenv("ARCHIVE_UPLOAD_TOKEN") or None)
    request_timeout: float = Field(
        default_factory=lambda: float(os.getenv("ARCHIVE_REQUEST_TIMEOUT", "30"))
    )


@lru_cache(maxsize=1)
def get_settings() -> ArchiveSettings:
    return ArchiveSettings()


__all__ = ["ArchiveSettings", "IngestSettings", "get_settings"]
