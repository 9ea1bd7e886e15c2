from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from ...catalog import CatalogStore
from ...models import CatalogListing, CatalogUpsertResult
from ..deps import get_catalog_store, get_writable_catalog_store, require_upload_token

router = APIRouter(prefix="/v1/catalog", tags=["catalog"])


@router.get("", response_model=CatalogListing, response_model_by_alias=True)
def read_catalog(store: CatalogStore = Depends(get_catalog_store)) -> CatalogListing:
    # read_all absorbs storage and parse failures so the gallery always renders
    return CatalogListing(items=store.read_all())


@router.post(
    "/items",
    response_model=CatalogUpsertResult,
    response_model_by_alias=True,
    dependencies=[Depends(require_upload_token)],
)
def upsert_item(
    payload: Dict[str, Any] = Body(...),
    store: CatalogStore = Depends(get_writable_catalog_store),
) -> CatalogUpsertResult:
    return store.upsert(payload)


__all__ = ["router"]
