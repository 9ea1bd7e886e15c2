"""Canonical object keys and content-type rules for uploaded images."""
from __future__ import annotations

import re
import secrets
from datetime import UTC, datetime
from pathlib import PurePosixPath
from typing import Optional

from ..errors import UnsupportedContentTypeError
from ..models import RecordKind

ALLOWED_CONTENT_TYPES: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/avif": ".avif",
}
CONTENT_TYPE_ALIASES = {"image/jpg": "image/jpeg"}
FALLBACK_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".avif"}
DEFAULT_EXTENSION = ".jpg"
MAX_NAME_LENGTH = 120
KEY_PREFIX = "images"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_DASH_RUNS = re.compile(r"-+")


def normalize_content_type(content_type: Optional[str]) -> str:
    """Return the canonical allowed content type or raise."""
    value = (content_type or "").strip().lower()
    value = CONTENT_TYPE_ALIASES.get(value, value)
    if value not in ALLOWED_CONTENT_TYPES:
        raise UnsupportedContentTypeError(
            f"Unsupported content type: {content_type}",
            details={"allowed": sorted(ALLOWED_CONTENT_TYPES)},
        )
    return value


def sanitize_filename(name: Optional[str]) -> str:
    """Reduce a filename stem to a URL/key safe token."""
    stem = (name or "").strip()
    suffix = PurePosixPath(stem).suffix
    if suffix and suffix != stem:
        stem = stem[: -len(suffix)]
    cleaned = _UNSAFE_CHARS.sub("-", stem)
    cleaned = _DASH_RUNS.sub("-", cleaned).strip("-.")
    cleaned = cleaned[:MAX_NAME_LENGTH].rstrip("-.")
    return cleaned or "image"


def detect_extension(content_type: Optional[str], filename: Optional[str]) -> str:
    """Prefer the content type's extension; fall back to the filename's."""
    value = (content_type or "").strip().lower()
    value = CONTENT_TYPE_ALIASES.get(value, value)
    if value in ALLOWED_CONTENT_TYPES:
        return ALLOWED_CONTENT_TYPES[value]
    suffix = PurePosixPath(filename or "").suffix.lower()
    if suffix in FALLBACK_EXTENSIONS:
        return ".jpg" if suffix == ".jpeg" else suffix
    return DEFAULT_EXTENSION


def new_disambiguator(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(tz=UTC)
    return f"{int(moment.timestamp() * 1000)}{secrets.token_hex(3)}"


def build_object_key(
    kind: RecordKind,
    filename: Optional[str],
    content_type: Optional[str],
    *,
    now: Optional[datetime] = None,
    disambiguator: Optional[str] = None,
) -> str:
    """images/{photos|screenshots}/{YYYY}/{MM}/{disambiguator}_{name}{ext}

    Year and month are the UTC processing time, not the capture date.
    """
    moment = now or datetime.now(tz=UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    moment = moment.astimezone(UTC)
    token = disambiguator or new_disambiguator(moment)
    name = sanitize_filename(filename)
    ext = detect_extension(content_type, filename)
    return f"{KEY_PREFIX}/{kind.folder}/{moment:%Y}/{moment:%m}/{token}_{name}{ext}"


def build_public_url(public_base_url: str, key: str) -> tuple[str, bool]:
    """Return (url, servable); without a public base the bare key is not servable."""
    base = (public_base_url or "").strip()
    if not base:
        return f"/{key}", False
    return f"{base.rstrip('/')}/{key}", True


__all__ = [
    "ALLOWED_CONTENT_TYPES",
    "build_object_key",
    "build_public_url",
    "detect_extension",
    "new_disambiguator",
    "normalize_content_type",
    "sanitize_filename",
]
