from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RecordKind(str, enum.Enum):
    PHOTO = "photo"
    SCREENSHOT = "screenshot"

    @property
    def folder(self) -> str:
        return "screenshots" if self is RecordKind.SCREENSHOT else "photos"

    @property
    def id_prefix(self) -> str:
        return "ss" if self is RecordKind.SCREENSHOT else "ph"

    @property
    def default_source(self) -> str:
        return "Game" if self is RecordKind.SCREENSHOT else "Phone Camera"


class CatalogRecord(BaseModel):
    """One visual asset as stored in the catalog document.

    Python attribute names are descriptive; the JSON names (aliases) are the
    ones the gallery reads. Unknown keys are kept so records written by other
    tools survive a rewrite.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(min_length=1)
    kind: RecordKind = Field(alias="type")
    title: str = "Untitled"
    capture_date: Optional[str] = Field(default=None, alias="date")
    year: Optional[int] = None
    source_label: str = Field(default="", alias="source")
    location_label: Optional[str] = Field(default=None, alias="location")
    resolution: Optional[str] = None
    tags: Optional[List[str]] = None
    thumbnail_ref: Optional[str] = Field(default=None, alias="thumb")
    full_ref: str = Field(min_length=1, alias="src")

    @field_validator("year", mode="before")
    @classmethod
    def coerce_year(cls, value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if number != number or number in (float("inf"), float("-inf")):
            return None
        return int(number)

    @field_validator("thumbnail_ref", mode="before")
    @classmethod
    def blank_thumb(cls, value: Any) -> Any:
        if not isinstance(value, str) or not value:
            return None
        return value

    @model_validator(mode="after")
    def derive_defaults(self) -> "CatalogRecord":
        if not self.thumbnail_ref:
            self.thumbnail_ref = self.full_ref
        date_year = year_from_date(self.capture_date)
        if date_year is not None:
            self.year = date_year
        elif self.year is None:
            self.year = datetime.now().year
        return self

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def year_from_date(value: Optional[str]) -> Optional[int]:
    if not value or len(value) < 4 or not value[:4].isdigit():
        return None
    return int(value[:4])


class UploadAuthorizationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: RecordKind = Field(default=RecordKind.PHOTO, alias="type")
    source: str = ""
    filename: str = "image"
    content_type: str = Field(min_length=1)


class UploadAuthorization(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    upload_url: str
    public_url: str
    public_url_servable: bool
    expires_at: datetime
    kind: RecordKind = Field(alias="type")
    source: str = ""
    content_type: str


class CatalogUpsertResult(BaseModel):
    record: CatalogRecord
    total_count: int
    replaced: bool
    catalog_key: str
    attempts: int = 1


class CatalogListing(BaseModel):
    items: List[CatalogRecord] = Field(default_factory=list)


class ErrorEnvelope(BaseModel):
    error_code: str
    message: str
    retryable: bool
    correlation_id: str
    details: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "CatalogListing",
    "CatalogRecord",
    "CatalogUpsertResult",
    "ErrorEnvelope",
    "RecordKind",
    "UploadAuthorization",
    "UploadAuthorizationRequest",
    "year_from_date",
]
