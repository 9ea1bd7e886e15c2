"""Drive a batch of local files through authorize, write and publish.

Files are processed one at a time in ``(capture_date, filename)`` order. The
first failure halts the batch; records already published stay in the catalog.
"""
from __future__ import annotations

import asyncio
import mimetypes
import os
from pathlib import Path
from typing import AsyncIterator, Callable, Iterable, List, Optional, Sequence

import httpx

from ..errors import ArchiveServiceError, ObjectWriteError
from ..logging import get_logger
from ..metadata import (
    capture_date_from_mtime,
    format_resolution,
    make_record_id,
    measure_dimensions,
    title_from_filename,
)
from ..models import CatalogRecord, RecordKind
from ..sdk import ArchiveClient
from ..storage.writer import ObjectWriter
from .types import IngestEvent, IngestReport, IngestState, PendingItem

logger = get_logger("archive.ingest")

_HALTING_ERRORS = (ArchiveServiceError, ObjectWriteError, httpx.HTTPError, OSError, ValueError)


def guess_content_type(filename: str) -> str:
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or "application/octet-stream"


class IngestOrchestrator:
    def __init__(
        self,
        client: Optional[ArchiveClient] = None,
        writer: Optional[ObjectWriter] = None,
        *,
        kind: RecordKind = RecordKind.PHOTO,
        source: Optional[str] = None,
        location: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        dry_run: bool = False,
    ) -> None:
        if not dry_run and (client is None or writer is None):
            raise ValueError("client and writer are required unless dry_run is set")
        self._client = client
        self._writer = writer
        self.kind = kind
        self.source = (source or "").strip() or kind.default_source
        self.location = (location or "").strip() or None
        self.tags = [tag.strip() for tag in tags or [] if tag.strip()] or None
        self.dry_run = dry_run
        self.state = IngestState.IDLE
        self.report = IngestReport(dry_run=dry_run)
        self._items: List[PendingItem] = []
        self._running = False

    async def __aenter__(self) -> "IngestOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._running = False
        self._release()

    @property
    def items(self) -> List[PendingItem]:
        return list(self._items)

    async def select_files(self, paths: Iterable[os.PathLike[str] | str]) -> List[PendingItem]:
        """Replace the current selection and measure every file concurrently."""
        if self._running:
            raise RuntimeError("cannot change the selection while a run is in progress")
        self._release()
        self.report = IngestReport(dry_run=self.dry_run)
        self.state = IngestState.IDLE

        items: List[PendingItem] = []
        try:
            for raw in paths:
                path = Path(raw)
                stat = path.stat()
                items.append(
                    PendingItem(
                        path=path,
                        stream=path.open("rb"),
                        capture_date=capture_date_from_mtime(stat.st_mtime),
                    )
                )
        except OSError:
            for item in items:
                item.release()
            raise

        self._items = items
        if not items:
            return []

        self.state = IngestState.MEASURING
        sizes = await asyncio.gather(
            *(asyncio.to_thread(measure_dimensions, item.path) for item in items)
        )
        unmeasured = 0
        for item, size in zip(items, sizes):
            if size is None:
                unmeasured += 1
                continue
            item.width, item.height = size
        self.state = IngestState.FILES_SELECTED
        logger.info("ingest_files_selected", count=len(items), unmeasured=unmeasured)
        return list(items)

    def reset(self) -> None:
        if self._running:
            raise RuntimeError("cannot reset while a run is in progress")
        self._release()
        self.report = IngestReport(dry_run=self.dry_run)
        self.state = IngestState.IDLE

    def build_record(self, item: PendingItem, seq: int, locator: str) -> CatalogRecord:
        return CatalogRecord(
            id=make_record_id(self.kind, item.capture_date, self.source, seq),
            kind=self.kind,
            title=title_from_filename(item.filename),
            capture_date=item.capture_date,
            source_label=self.source,
            location_label=self.location,
            resolution=format_resolution(item.width, item.height),
            tags=list(self.tags) if self.tags else None,
            thumbnail_ref=locator,
            full_ref=locator,
        )

    async def events(self) -> AsyncIterator[IngestEvent]:
        """Yield one event per step until the batch is done or halted.

        A consumer that stops early must ``aclose()`` the generator or leave
        the orchestrator's ``async with`` block before reusing it.
        """
        if self._running:
            raise RuntimeError("a run is already in progress")
        if not self._items:
            raise RuntimeError("no files selected")

        self._running = True
        batch = self._items
        ordered = sorted(batch, key=lambda item: (item.capture_date or "", item.filename))
        total = len(ordered)
        report = self.report = IngestReport(dry_run=self.dry_run)
        try:
            for seq, item in enumerate(ordered, start=1):
                name = item.filename
                try:
                    if self.dry_run:
                        locator = f"images/{self.kind.folder}/{name}"
                        record = self.build_record(item, seq, locator)
                        report.records.append(record)
                        report.total_count = len(report.records)
                        yield self._event(
                            IngestState.PUBLISHING,
                            f"Prepared {seq}/{total}: {name}",
                            name, seq, total, record,
                        )
                        continue

                    yield self._event(
                        IngestState.SIGNING, f"Signing {seq}/{total}: {name}", name, seq, total
                    )
                    authorization = await self._client.authorize(
                        self.kind, self.source, name, guess_content_type(name)
                    )

                    yield self._event(
                        IngestState.UPLOADING, f"Uploading {seq}/{total}: {name}", name, seq, total
                    )
                    data = await asyncio.to_thread(item.read)
                    await self._writer.write(authorization, data, authorization.content_type)

                    record = self.build_record(item, seq, authorization.public_url)
                    yield self._event(
                        IngestState.PUBLISHING,
                        f"Publishing {seq}/{total}: {name}",
                        name, seq, total, record,
                    )
                    result = await self._client.upsert_record(record)
                    report.records.append(result.record)
                    report.total_count = result.total_count
                    logger.info(
                        "ingest_item_published",
                        filename=name,
                        record_id=result.record.id,
                        replaced=result.replaced,
                        total_count=result.total_count,
                    )
                except _HALTING_ERRORS as exc:
                    report.halted_at = name
                    report.reason = str(exc)
                    logger.error("ingest_halted", filename=name, position=seq, error=str(exc))
                    yield self._event(
                        IngestState.HALTED,
                        f"Failed on {name}: {exc}. {len(report.records)} of {total} published.",
                        name, seq, total,
                    )
                    return

            noun = "entry" if total == 1 else "entries"
            verb = "Generated" if self.dry_run else "Published"
            yield self._event(IngestState.DONE, f"{verb} {total} catalog {noun}.", None, total, total)
        finally:
            for item in batch:
                item.release()
            # an abandoned generator may be finalised after a newer selection
            if self._items is batch:
                self._items = []
                self._running = False

    async def run(self, on_status: Optional[Callable[[str], None]] = None) -> IngestReport:
        async for event in self.events():
            if on_status is not None:
                on_status(event.message)
        return self.report

    def _event(
        self,
        state: IngestState,
        message: str,
        filename: Optional[str],
        position: int,
        total: int,
        record: Optional[CatalogRecord] = None,
    ) -> IngestEvent:
        self.state = state
        return IngestEvent(
            state=state,
            message=message,
            filename=filename,
            position=position,
            total=total,
            record=record,
        )

    def _release(self) -> None:
        for item in self._items:
            item.release()
        self._items = []


__all__ = ["IngestOrchestrator", "guess_content_type"]
