from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, List, Optional

from ..models import CatalogRecord


class IngestState(str, enum.Enum):
    IDLE = "idle"
    FILES_SELECTED = "files_selected"
    MEASURING = "measuring"
    SIGNING = "signing"
    UPLOADING = "uploading"
    PUBLISHING = "publishing"
    DONE = "done"
    HALTED = "halted"


@dataclass(slots=True)
class PendingItem:
    """A locally selected file waiting to be ingested."""

    path: Path
    stream: Optional[BinaryIO]
    capture_date: Optional[str]
    width: int = 0
    height: int = 0

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def measured(self) -> bool:
        return self.width > 0 and self.height > 0

    def read(self) -> bytes:
        if self.stream is None or self.stream.closed:
            raise ValueError(f"stream for {self.filename} has been released")
        self.stream.seek(0)
        return self.stream.read()

    def release(self) -> None:
        if self.stream is not None and not self.stream.closed:
            self.stream.close()
        self.stream = None


@dataclass(slots=True)
class IngestEvent:
    state: IngestState
    message: str
    filename: Optional[str] = None
    position: int = 0
    total: int = 0
    record: Optional[CatalogRecord] = None


@dataclass(slots=True)
class IngestReport:
    records: List[CatalogRecord] = field(default_factory=list)
    total_count: int = 0
    halted_at: Optional[str] = None
    reason: Optional[str] = None
    dry_run: bool = False

    @property
    def halted(self) -> bool:
        return self.halted_at is not None


__all__ = ["IngestEvent", "IngestReport", "IngestState", "PendingItem"]
