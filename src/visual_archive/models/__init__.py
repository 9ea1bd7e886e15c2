"""Public data contracts for the archive service."""

from .contracts import (  # noqa: F401
    CatalogListing,
    CatalogRecord,
    CatalogUpsertResult,
    ErrorEnvelope,
    RecordKind,
    UploadAuthorization,
    UploadAuthorizationRequest,
    year_from_date,
)
