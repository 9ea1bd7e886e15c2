from __future__ import annotations

from typing import Optional

from minio import Minio
from minio.error import S3Error

from ..config import ArchiveSettings, get_settings
from ..errors import ConfigurationError
from ..logging import get_logger

logger = get_logger("archive.storage")

_minio_client: Minio | None = None
_minio_bucket_checked = False


def get_minio_client(settings: Optional[ArchiveSettings] = None) -> Minio:
    """Return the shared S3 client, failing closed when storage is not configured."""
    global _minio_client
    settings = settings or get_settings()
    missing = settings.missing_storage_settings()
    if missing:
        logger.error("storage_config_missing", missing=missing)
        raise ConfigurationError(
            f"Missing env var: {', '.join(missing)}",
            details={"missing": missing},
        )
    if _minio_client is None:
        _minio_client = Minio(
            settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            secure=settings.s3_secure,
            region=settings.s3_region,
        )
    return _minio_client


def ensure_bucket(client: Minio, bucket: str) -> None:
    global _minio_bucket_checked
    if _minio_bucket_checked:
        return
    try:
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
            logger.info("storage_bucket_created", bucket=bucket)
    except S3Error as exc:
        if exc.code not in {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}:
            raise
    _minio_bucket_checked = True


def reset_client() -> None:
    global _minio_client, _minio_bucket_checked
    _minio_client = None
    _minio_bucket_checked = False


__all__ = ["ensure_bucket", "get_minio_client", "reset_client"]
