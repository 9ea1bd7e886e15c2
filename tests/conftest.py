from __future__ import annotations

import io
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from visual_archive.api import deps as api_deps  # noqa: E402
from visual_archive.catalog import store as catalog_store  # noqa: E402
from visual_archive.config import ArchiveSettings  # noqa: E402
from visual_archive.storage import minio_client  # noqa: E402


class FakeS3Error(Exception):
    def __init__(self, code: str, status: int = 404) -> None:
        super().__init__(code)
        self.code = code
        self.status = status


class FakeObjectResponse:
    def __init__(self, data: bytes, etag: str, read_error: Optional[Exception] = None) -> None:
        self._data = data
        self._read_error = read_error
        self.headers = {"ETag": f'"{etag}"'}
        self.closed = False
        self.released = False

    def read(self) -> bytes:
        if self._read_error is not None:
            raise self._read_error
        return self._data

    def close(self) -> None:
        self.closed = True

    def release_conn(self) -> None:
        self.released = True


class FakeStat:
    def __init__(self, etag: str) -> None:
        self.etag = etag


class FakeMinio:
    """In-memory stand-in for ``minio.Minio`` with versioned ETags."""

    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str], Tuple[bytes, str]] = {}
        self.buckets: set[str] = set()
        self.put_calls: List[Dict[str, Any]] = []
        self.presign_calls: List[Dict[str, Any]] = []
        self.responses: List[FakeObjectResponse] = []
        self.get_error: Optional[Exception] = None
        self.read_error: Optional[Exception] = None
        self.failures: Dict[str, Exception] = {}
        self.before_stat: Optional[Callable[["FakeMinio"], None]] = None
        self._version = 0

    def _fail(self, method: str) -> None:
        if method in self.failures:
            raise self.failures[method]

    def seed(self, bucket: str, key: str, data: bytes) -> None:
        self._version += 1
        self.objects[(bucket, key)] = (data, f"v{self._version}")

    def bucket_exists(self, bucket: str) -> bool:
        self._fail("bucket_exists")
        return bucket in self.buckets

    def make_bucket(self, bucket: str) -> None:
        self.buckets.add(bucket)

    def get_object(self, bucket: str, key: str) -> FakeObjectResponse:
        if self.get_error is not None:
            raise self.get_error
        if (bucket, key) not in self.objects:
            raise FakeS3Error("NoSuchKey")
        data, etag = self.objects[(bucket, key)]
        response = FakeObjectResponse(data, etag, self.read_error)
        self.responses.append(response)
        return response

    def stat_object(self, bucket: str, key: str) -> FakeStat:
        self._fail("stat_object")
        if self.before_stat is not None:
            self.before_stat(self)
        if (bucket, key) not in self.objects:
            raise FakeS3Error("NoSuchKey")
        return FakeStat(self.objects[(bucket, key)][1])

    def put_object(
        self,
        bucket: str,
        key: str,
        data: io.BytesIO,
        length: int,
        content_type: str = "application/octet-stream",
    ) -> None:
        self._fail("put_object")
        body = data.read(length)
        self.put_calls.append(
            {"bucket": bucket, "key": key, "length": length, "content_type": content_type}
        )
        self.seed(bucket, key, body)

    def presigned_put_object(self, bucket: str, key: str, expires: timedelta) -> str:
        self._fail("presigned_put_object")
        self.presign_calls.append({"bucket": bucket, "key": key, "expires": expires})
        return f"https://store.test/{bucket}/{key}?X-Amz-Expires={int(expires.total_seconds())}"


@pytest.fixture
def fake_minio(monkeypatch) -> FakeMinio:
    monkeypatch.setattr(catalog_store, "S3Error", FakeS3Error)
    monkeypatch.setattr(minio_client, "S3Error", FakeS3Error)
    monkeypatch.setattr(api_deps, "S3Error", FakeS3Error)
    minio_client.reset_client()
    yield FakeMinio()
    minio_client.reset_client()


def build_settings(**overrides: Any) -> ArchiveSettings:
    values: Dict[str, Any] = {
        "s3_endpoint": "store.test:9000",
        "s3_access_key": "access",
        "s3_secret_key": "secret-key",
        "s3_bucket": "archive",
        "s3_region": "auto",
        "public_base_url": "https://cdn.test",
        "upload_token": "letmein",
        "upload_url_ttl_seconds": 300,
        "catalog_key": "catalog.json",
        "catalog_max_attempts": 5,
        "cors_allow_origins": ["*"],
    }
    values.update(overrides)
    return ArchiveSettings(**values)


@pytest.fixture
def settings() -> ArchiveSettings:
    return build_settings()
