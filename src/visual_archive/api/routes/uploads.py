from __future__ import annotations

from fastapi import APIRouter, Depends
from minio import Minio

from ...config import ArchiveSettings
from ...models import UploadAuthorization, UploadAuthorizationRequest
from ...storage import authorize_upload
from ..deps import get_archive_settings, get_storage_client, require_upload_token

router = APIRouter(prefix="/v1/uploads", tags=["uploads"])


@router.post(
    "/sign",
    response_model=UploadAuthorization,
    response_model_by_alias=True,
    dependencies=[Depends(require_upload_token)],
)
def sign_upload(
    payload: UploadAuthorizationRequest,
    client: Minio = Depends(get_storage_client),
    settings: ArchiveSettings = Depends(get_archive_settings),
) -> UploadAuthorization:
    return authorize_upload(client, settings, payload)


__all__ = ["router"]
