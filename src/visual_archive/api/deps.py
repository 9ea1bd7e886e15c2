from __future__ import annotations

import secrets

from fastapi import Depends, Request
from minio import Minio
from minio.error import S3Error

from ..catalog import CatalogStore
from ..config import ArchiveSettings, get_settings
from ..errors import CatalogStorageError, UploadLockedError
from ..storage import ensure_bucket, get_minio_client


def get_archive_settings() -> ArchiveSettings:
    return get_settings()


def require_upload_token(
    request: Request,
    settings: ArchiveSettings = Depends(get_archive_settings),
) -> None:
    """Bearer-token gate for write endpoints; locked when no token is configured."""
    if not settings.upload_token:
        raise UploadLockedError("Upload is locked: no upload token configured")
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise UploadLockedError("Upload is locked: missing bearer token")
    if not secrets.compare_digest(token.strip(), settings.upload_token):
        raise UploadLockedError("Upload is locked: invalid token")


def get_storage_client(settings: ArchiveSettings = Depends(get_archive_settings)) -> Minio:
    return get_minio_client(settings)


def get_catalog_store(
    client: Minio = Depends(get_storage_client),
    settings: ArchiveSettings = Depends(get_archive_settings),
) -> CatalogStore:
    return CatalogStore(
        client,
        settings.s3_bucket,
        settings.catalog_key,
        max_attempts=settings.catalog_max_attempts,
    )


def get_writable_catalog_store(
    store: CatalogStore = Depends(get_catalog_store),
    client: Minio = Depends(get_storage_client),
    settings: ArchiveSettings = Depends(get_archive_settings),
) -> CatalogStore:
    try:
        ensure_bucket(client, settings.s3_bucket)
    except S3Error as exc:
        raise CatalogStorageError(
            f"Bucket check failed: {exc.code}", details={"bucket": settings.s3_bucket}
        ) from exc
    except Exception as exc:
        raise CatalogStorageError(
            f"Bucket check failed: {exc}", details={"bucket": settings.s3_bucket}
        ) from exc
    return store


__all__ = [
    "get_archive_settings",
    "get_catalog_store",
    "get_storage_client",
    "get_writable_catalog_store",
    "require_upload_token",
]
