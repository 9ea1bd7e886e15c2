from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import IO, Callable, Optional, Union

import httpx

from ..errors import CredentialExpiredError, ObjectWriteError
from ..logging import get_logger
from ..models import UploadAuthorization

logger = get_logger("archive.writer")

Payload = Union[bytes, IO[bytes]]


class ObjectWriter:
    """PUT bytes straight to the content store with a presigned URL.

    The writer knows nothing about the catalog and never retries.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._client = client
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    async def write(
        self,
        authorization: UploadAuthorization,
        data: Payload,
        content_type: Optional[str] = None,
    ) -> None:
        if self._clock() >= authorization.expires_at:
            logger.warning("object_write_credential_expired", key=authorization.key)
            raise CredentialExpiredError(authorization.key)

        body = data if isinstance(data, bytes) else await asyncio.to_thread(data.read)
        headers = {"Content-Type": content_type or authorization.content_type}
        try:
            response = await self._client.put(
                authorization.upload_url, content=body, headers=headers
            )
        except httpx.HTTPError as exc:
            logger.error("object_write_transport_failed", key=authorization.key, error=str(exc))
            raise ObjectWriteError(0, str(exc)) from exc

        if response.status_code < 200 or response.status_code >= 300:
            logger.error(
                "object_write_rejected",
                key=authorization.key,
                status=response.status_code,
            )
            raise ObjectWriteError(response.status_code, response.text)

        logger.info("object_written", key=authorization.key, size=len(body))


__all__ = ["ObjectWriter"]
