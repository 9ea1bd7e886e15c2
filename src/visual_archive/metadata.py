"""Deterministic per-file metadata for the ingest pipeline."""
from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .logging import get_logger
from .models import RecordKind

try:
    from pillow_heif import register_heif_opener

    register_heif_opener()
except ImportError:  # HEIC support is optional
    pass

logger = get_logger("archive.metadata")

MAX_SLUG_LENGTH = 40
UNKNOWN_DATE = "unknown-date"

_QUOTES = re.compile(r"['\"`‘’“”]")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_TITLE_SEPARATORS = re.compile(r"[_-]+")


def capture_date_from_mtime(mtime: float) -> str:
    """Local-time ``YYYY-MM-DD`` for a last-modified timestamp."""
    return datetime.fromtimestamp(mtime).strftime("%Y-%m-%d")


def measure_dimensions(path: Path | str) -> Optional[Tuple[int, int]]:
    """Read pixel dimensions from the image header, or ``None`` if unreadable."""
    try:
        with Image.open(path) as image:
            width, height = image.size
    except (OSError, UnidentifiedImageError, ValueError) as exc:
        logger.warning("dimension_measure_failed", path=str(path), error=str(exc))
        return None
    if width <= 0 or height <= 0:
        return None
    return int(width), int(height)


def title_from_filename(name: str) -> str:
    stem = Path(name).stem if Path(name).suffix else name
    title = _TITLE_SEPARATORS.sub(" ", stem).strip()
    return title or "Untitled"


def slugify(text: Optional[str]) -> str:
    value = _QUOTES.sub("", (text or "").lower())
    value = _NON_ALNUM.sub("-", value).strip("-")
    return value[:MAX_SLUG_LENGTH].rstrip("-")


def make_record_id(
    kind: RecordKind,
    capture_date: Optional[str],
    source_label: Optional[str],
    seq: int,
) -> str:
    parts = [kind.id_prefix, capture_date or UNKNOWN_DATE]
    slug = slugify(source_label)
    if slug:
        parts.append(slug)
    parts.append(f"{seq:03d}")
    return "-".join(parts)


def format_resolution(width: Optional[int], height: Optional[int]) -> Optional[str]:
    if not width or not height:
        return None
    return f"{width}x{height}"


__all__ = [
    "capture_date_from_mtime",
    "format_resolution",
    "make_record_id",
    "measure_dimensions",
    "slugify",
    "title_from_filename",
]
