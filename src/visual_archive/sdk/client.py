from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

import httpx

from ..errors import ArchiveServiceError
from ..models import (
    CatalogRecord,
    CatalogUpsertResult,
    RecordKind,
    UploadAuthorization,
    UploadAuthorizationRequest,
)


class ArchiveClient:
    """Async SDK for the archive service.

    Pass an ``httpx.AsyncClient`` to share a connection pool (or a mock
    transport); otherwise one is created and closed with the client.
    """

    def __init__(
        self,
        base_url: str,
        auth_token: str | None = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth_token = auth_token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "ArchiveClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        return headers

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        response = await self._client.request(
            method,
            f"{self._base_url}{path}",
            json=json,
            headers=self._headers(),
        )
        if response.is_success:
            return response.json()
        raise _service_error(response)

    async def authorize(
        self,
        kind: RecordKind,
        source: str,
        filename: str,
        content_type: str,
    ) -> UploadAuthorization:
        request = UploadAuthorizationRequest(
            kind=kind, source=source, filename=filename, content_type=content_type
        )
        payload = await self._request(
            "POST", "/v1/uploads/sign", json=request.model_dump(mode="json", by_alias=True)
        )
        return UploadAuthorization.model_validate(payload)

    async def upsert_record(
        self, record: Union[CatalogRecord, Mapping[str, Any]]
    ) -> CatalogUpsertResult:
        body = record.to_document() if isinstance(record, CatalogRecord) else dict(record)
        payload = await self._request("POST", "/v1/catalog/items", json=body)
        return CatalogUpsertResult.model_validate(payload)

    async def read_catalog(self) -> List[CatalogRecord]:
        payload = await self._request("GET", "/v1/catalog")
        return [CatalogRecord.model_validate(item) for item in payload.get("items", [])]


def _service_error(response: httpx.Response) -> ArchiveServiceError:
    body: Dict[str, Any] = {}
    try:
        parsed = response.json()
        if isinstance(parsed, dict):
            body = parsed
    except ValueError:
        pass
    return ArchiveServiceError(
        response.status_code,
        str(body.get("error_code") or f"HTTP.{response.status_code}"),
        str(body.get("message") or response.text or response.reason_phrase),
        retryable=bool(body.get("retryable", response.status_code >= 500)),
        correlation_id=body.get("correlation_id") or response.headers.get("X-Correlation-ID"),
    )


__all__ = ["ArchiveClient"]
