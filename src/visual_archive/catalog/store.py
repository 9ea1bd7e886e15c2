"""Single-document catalog kept in object storage.

The whole index lives in one JSON object (``{"items": [...]}``). Every
mutation reads the full document, merges one record by ``id``, sorts and
writes the full document back to the same key.
"""
from __future__ import annotations

import io
import random
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import orjson
from minio import Minio
from minio.error import S3Error
from pydantic import ValidationError

from ..errors import CatalogConflictError, CatalogStorageError, RecordValidationError
from ..logging import get_logger
from ..models import CatalogRecord, CatalogUpsertResult

logger = get_logger("archive.catalog")

_ABSENT_CODES = {"NoSuchKey", "NoSuchObject", "ResourceNotFound"}


class _PreconditionFailed(Exception):
    def __init__(self, expected: Optional[str], found: Optional[str]) -> None:
        super().__init__(f"expected etag {expected!r}, found {found!r}")
        self.expected = expected
        self.found = found


def validate_record(payload: Union[CatalogRecord, Mapping[str, Any]]) -> CatalogRecord:
    if isinstance(payload, CatalogRecord):
        return payload
    if not isinstance(payload, Mapping):
        raise RecordValidationError("Catalog record must be a JSON object")
    try:
        return CatalogRecord.model_validate(dict(payload))
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False)
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in errors})
        raise RecordValidationError(
            f"Invalid catalog record: {', '.join(fields) or 'body'}",
            details={"errors": [
                {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]} for err in errors
            ]},
        ) from exc


def sort_items(items: List[Any]) -> List[Any]:
    """Newest ``date`` first; undated items last; ties keep their order."""

    def _date(item: Any) -> str:
        if isinstance(item, dict):
            return str(item.get("date") or "")
        return ""

    return sorted(items, key=_date, reverse=True)


def merge_record(items: List[Any], document: Dict[str, Any]) -> Tuple[List[Any], bool]:
    merged = list(items)
    for index, item in enumerate(merged):
        if isinstance(item, dict) and item.get("id") == document["id"]:
            merged[index] = document
            return sort_items(merged), True
    merged.append(document)
    return sort_items(merged), False


def _parse_items(raw: bytes) -> List[Any]:
    if not raw or not raw.strip():
        return []
    try:
        document = orjson.loads(raw)
    except orjson.JSONDecodeError:
        logger.warning("catalog_document_unparsable", size=len(raw))
        return []
    if not isinstance(document, dict) or not isinstance(document.get("items"), list):
        logger.warning("catalog_document_malformed")
        return []
    return document["items"]


def _clean_etag(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value.strip().strip('"') or None


class CatalogStore:
    """Read-whole / upsert-one access to the shared catalog document.

    Concurrency hazard: the store is read-modify-write over a plain object.
    Two writers that read the same version would each write back their own
    merge and one update would be lost. The store remembers the ETag seen at
    read time and checks it (stat) right before the put; on mismatch it
    re-reads, re-merges and tries again. S3 offers no If-Match on PUT through
    this client, so a writer landing between the stat and the put can still
    be overwritten.
    """

    def __init__(
        self,
        client: Minio,
        bucket: str,
        catalog_key: str = "catalog.json",
        *,
        max_attempts: int = 5,
        backoff_seconds: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._bucket = bucket
        self._key = catalog_key
        self._max_attempts = max(1, max_attempts)
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    @property
    def catalog_key(self) -> str:
        return self._key

    def read_all(self) -> List[CatalogRecord]:
        try:
            items, _ = self._load()
        except Exception as exc:
            logger.warning("catalog_read_failed", key=self._key, error=str(exc))
            return []

        records: List[CatalogRecord] = []
        for position, item in enumerate(items):
            try:
                records.append(CatalogRecord.model_validate(item))
            except ValidationError:
                logger.warning("catalog_item_skipped", key=self._key, position=position)
        return records

    def upsert(self, payload: Union[CatalogRecord, Mapping[str, Any]]) -> CatalogUpsertResult:
        record = validate_record(payload)
        document = record.to_document()

        for attempt in range(1, self._max_attempts + 1):
            items, etag = self._load()
            merged, replaced = merge_record(items, document)
            try:
                self._write(merged, etag)
            except _PreconditionFailed as exc:
                logger.warning(
                    "catalog_upsert_conflict",
                    key=self._key,
                    record_id=record.id,
                    attempt=attempt,
                    expected_etag=exc.expected,
                    found_etag=exc.found,
                )
                if attempt < self._max_attempts:
                    self._sleep(self._backoff(attempt))
                continue

            logger.info(
                "catalog_upsert",
                key=self._key,
                record_id=record.id,
                replaced=replaced,
                total_count=len(merged),
                attempts=attempt,
            )
            return CatalogUpsertResult(
                record=record,
                total_count=len(merged),
                replaced=replaced,
                catalog_key=self._key,
                attempts=attempt,
            )

        logger.error(
            "catalog_upsert_conflict_exhausted",
            key=self._key,
            record_id=record.id,
            attempts=self._max_attempts,
        )
        raise CatalogConflictError(
            f"Catalog changed concurrently; gave up after {self._max_attempts} attempts",
            details={"record_id": record.id, "attempts": self._max_attempts},
        )

    def _backoff(self, attempt: int) -> float:
        return self._backoff_seconds * (2 ** (attempt - 1)) * random.uniform(0.5, 1.5)

    def _load(self) -> Tuple[List[Any], Optional[str]]:
        try:
            response = self._client.get_object(self._bucket, self._key)
        except S3Error as exc:
            if exc.code in _ABSENT_CODES:
                return [], None
            raise CatalogStorageError(
                f"Catalog read failed: {exc.code}", details={"key": self._key}
            ) from exc
        except Exception as exc:
            raise CatalogStorageError(
                f"Catalog read failed: {exc}", details={"key": self._key}
            ) from exc

        try:
            raw = response.read()
            etag = _clean_etag(response.headers.get("ETag"))
        except Exception as exc:
            raise CatalogStorageError(
                f"Catalog read failed: {exc}", details={"key": self._key}
            ) from exc
        finally:
            response.close()
            response.release_conn()
        return _parse_items(raw), etag

    def _current_etag(self) -> Optional[str]:
        try:
            stat = self._client.stat_object(self._bucket, self._key)
        except S3Error as exc:
            if exc.code in _ABSENT_CODES:
                return None
            raise CatalogStorageError(
                f"Catalog stat failed: {exc.code}", details={"key": self._key}
            ) from exc
        except Exception as exc:
            raise CatalogStorageError(
                f"Catalog stat failed: {exc}", details={"key": self._key}
            ) from exc
        return _clean_etag(stat.etag)

    def _write(self, items: List[Any], expected_etag: Optional[str]) -> None:
        found = self._current_etag()
        if found != expected_etag:
            raise _PreconditionFailed(expected_etag, found)

        body = orjson.dumps({"items": items}, option=orjson.OPT_INDENT_2)
        try:
            self._client.put_object(
                self._bucket,
                self._key,
                io.BytesIO(body),
                length=len(body),
                content_type="application/json",
            )
        except S3Error as exc:
            raise CatalogStorageError(
                f"Catalog write failed: {exc.code}", details={"key": self._key}
            ) from exc
        except Exception as exc:
            raise CatalogStorageError(
                f"Catalog write failed: {exc}", details={"key": self._key}
            ) from exc


__all__ = ["CatalogStore", "merge_record", "sort_items", "validate_record"]
