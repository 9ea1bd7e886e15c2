from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Optional

from minio import Minio

from ..config import ArchiveSettings
from ..errors import StorageUnavailableError
from ..logging import get_logger
from ..models import UploadAuthorization, UploadAuthorizationRequest
from .keys import build_object_key, build_public_url, normalize_content_type

logger = get_logger("archive.authorizer")


def authorize_upload(
    client: Minio,
    settings: ArchiveSettings,
    request: UploadAuthorizationRequest,
    *,
    now: Optional[datetime] = None,
    disambiguator: Optional[str] = None,
) -> UploadAuthorization:
    """Issue a short-lived presigned PUT URL for a freshly computed key.

    The presigned URL only signs the host, so the content type is pinned by
    returning it alongside the URL; the writer must echo it as Content-Type.
    """
    content_type = normalize_content_type(request.content_type)
    moment = now or datetime.now(tz=UTC)
    key = build_object_key(
        request.kind,
        request.filename,
        content_type,
        now=moment,
        disambiguator=disambiguator,
    )
    ttl = timedelta(seconds=settings.upload_url_ttl_seconds)
    try:
        upload_url = client.presigned_put_object(settings.s3_bucket, key, expires=ttl)
    except Exception as exc:
        logger.error("upload_presign_failed", key=key, error=str(exc))
        raise StorageUnavailableError(
            f"Could not sign upload: {exc}", details={"key": key}
        ) from exc
    public_url, servable = build_public_url(settings.public_base_url, key)

    logger.info(
        "upload_authorized",
        key=key,
        kind=request.kind.value,
        content_type=content_type,
        ttl_seconds=settings.upload_url_ttl_seconds,
        public_url_servable=servable,
    )
    return UploadAuthorization(
        key=key,
        upload_url=upload_url,
        public_url=public_url,
        public_url_servable=servable,
        expires_at=moment + ttl,
        kind=request.kind,
        source=request.source,
        content_type=content_type,
    )


__all__ = ["authorize_upload"]
