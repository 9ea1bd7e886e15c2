"""Exception types shared by the archive service, SDK and ingest pipeline.

Service-side errors carry the HTTP status and error code they map to so the
API layer can render them as an error envelope without a lookup table.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ArchiveError(Exception):
    status_code = 500
    error_code = "ARCHIVE.ERROR"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        retryable: Optional[bool] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        if retryable is not None:
            self.retryable = retryable
        self.details = details or {}


class ConfigurationError(ArchiveError):
    status_code = 500
    error_code = "CONFIG.MISSING"


class UploadLockedError(ArchiveError):
    status_code = 401
    error_code = "AUTH.UPLOAD_LOCKED"


class UnsupportedContentTypeError(ArchiveError):
    status_code = 400
    error_code = "UPLOAD.UNSUPPORTED_CONTENT_TYPE"


class RecordValidationError(ArchiveError):
    status_code = 400
    error_code = "CATALOG.INVALID_RECORD"


class StorageUnavailableError(ArchiveError):
    status_code = 503
    error_code = "STORAGE.UNAVAILABLE"
    retryable = True


class CatalogStorageError(StorageUnavailableError):
    error_code = "CATALOG.STORAGE_UNAVAILABLE"


class CatalogConflictError(ArchiveError):
    status_code = 409
    error_code = "CATALOG.WRITE_CONFLICT"
    retryable = True


class ArchiveServiceError(Exception):
    """Non-success response from the archive service, as seen by the SDK."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        *,
        retryable: bool = False,
        correlation_id: Optional[str] = None,
    ) -> None:
        super().__init__(f"{status_code} {error_code}: {message}")
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.retryable = retryable
        self.correlation_id = correlation_id


class ObjectWriteError(Exception):
    """The content store refused or failed a direct object write.

    ``status_code`` is 0 when the request never produced a response.
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"object store returned {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class CredentialExpiredError(ObjectWriteError):
    def __init__(self, key: str) -> None:
        super().__init__(403, f"write credential for {key} has expired")
        self.key = key


__all__ = [
    "ArchiveError",
    "ArchiveServiceError",
    "CatalogConflictError",
    "CatalogStorageError",
    "ConfigurationError",
    "CredentialExpiredError",
    "ObjectWriteError",
    "RecordValidationError",
    "StorageUnavailableError",
    "UnsupportedContentTypeError",
    "UploadLockedError",
]
