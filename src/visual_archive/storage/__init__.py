"""Object storage access: keys, presigned uploads, direct writes."""

from .authorizer import authorize_upload  # noqa: F401
from .keys import (  # noqa: F401
    ALLOWED_CONTENT_TYPES,
    build_object_key,
    build_public_url,
    normalize_content_type,
    sanitize_filename,
)
from .minio_client import ensure_bucket, get_minio_client, reset_client  # noqa: F401
from .writer import ObjectWriter  # noqa: F401
