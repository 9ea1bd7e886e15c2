"""Python SDK for the archive service."""

from .client import ArchiveClient  # noqa: F401
