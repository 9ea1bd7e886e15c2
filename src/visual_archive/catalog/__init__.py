"""Catalog document storage."""

from .store import CatalogStore, merge_record, sort_items, validate_record  # noqa: F401
