"""Batch ingest of local image files."""

from .orchestrator import IngestOrchestrator, guess_content_type  # noqa: F401
from .types import IngestEvent, IngestReport, IngestState, PendingItem  # noqa: F401
