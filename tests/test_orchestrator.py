from __future__ import annotations

import asyncio
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import httpx
import pytest
from PIL import Image
from typer.testing import CliRunner

from visual_archive.catalog import CatalogStore
from visual_archive.errors import ArchiveError, ArchiveServiceError
from visual_archive.ingest import IngestOrchestrator, IngestState
from visual_archive.main import cli
from visual_archive.models import RecordKind, UploadAuthorizationRequest
from visual_archive.storage import ObjectWriter, authorize_upload


class FakeArchiveClient:
    """Serves SDK calls from a real store and authorizer over a fake bucket."""

    def __init__(self, minio, settings) -> None:
        self.minio = minio
        self.settings = settings
        self.store = CatalogStore(minio, settings.s3_bucket, settings.catalog_key, sleep=lambda _: None)
        self.calls: List[tuple[str, str]] = []

    async def authorize(self, kind, source, filename, content_type):
        self.calls.append(("authorize", filename))
        request = UploadAuthorizationRequest(
            kind=kind, source=source, filename=filename, content_type=content_type
        )
        try:
            return authorize_upload(self.minio, self.settings, request)
        except ArchiveError as exc:
            raise ArchiveServiceError(exc.status_code, exc.error_code, exc.message) from exc

    async def upsert_record(self, record):
        self.calls.append(("upsert", record.id))
        return self.store.upsert(record)


class StoreTransport:
    def __init__(self, fail_on: Optional[str] = None) -> None:
        self.fail_on = fail_on
        self.objects: Dict[str, bytes] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.fail_on and self.fail_on in request.url.path:
            return httpx.Response(500, text="InternalError")
        self.objects[request.url.path] = request.content
        return httpx.Response(200)


def make_image(directory: Path, name: str, day: str, size=(32, 16)) -> Path:
    path = directory / name
    Image.new("RGB", size, "red").save(path, format="JPEG")
    stamp = datetime.fromisoformat(f"{day}T12:00:00").timestamp()
    os.utime(path, (stamp, stamp))
    return path


def run_batch(fake_client, transport: StoreTransport, paths, **options):
    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(transport)) as http:
            orchestrator = IngestOrchestrator(fake_client, ObjectWriter(http), **options)
            await orchestrator.select_files(paths)
            statuses: List[str] = []
            report = await orchestrator.run(on_status=statuses.append)
            return orchestrator, report, statuses

    return asyncio.run(_run())


def test_two_file_batch_publishes_sorted_catalog(tmp_path: Path, fake_minio, settings) -> None:
    later = make_image(tmp_path, "b.jpg", "2025-09-03")
    earlier = make_image(tmp_path, "a.jpg", "2025-09-01")
    client = FakeArchiveClient(fake_minio, settings)
    transport = StoreTransport()

    orchestrator, report, statuses = run_batch(client, transport, [later, earlier])

    assert not report.halted
    assert report.total_count == 2
    assert [call for call in client.calls if call[0] == "upsert"] == [
        ("upsert", "ph-2025-09-01-phone-camera-001"),
        ("upsert", "ph-2025-09-03-phone-camera-002"),
    ]
    catalog = client.store.read_all()
    assert [record.capture_date for record in catalog] == ["2025-09-03", "2025-09-01"]
    assert all(record.resolution == "32x16" for record in catalog)
    assert all(record.full_ref == record.thumbnail_ref for record in catalog)
    assert catalog[0].full_ref.startswith("https://cdn.test/images/photos/")
    assert len(transport.objects) == 2
    assert statuses[0] == "Signing 1/2: a.jpg"
    assert statuses[-1] == "Published 2 catalog entries."
    assert orchestrator.state is IngestState.DONE
    assert orchestrator.items == []


def test_second_batch_with_colliding_ids_replaces_records(tmp_path: Path, fake_minio, settings) -> None:
    paths = [make_image(tmp_path, "a.jpg", "2025-09-01"), make_image(tmp_path, "b.jpg", "2025-09-03")]
    client = FakeArchiveClient(fake_minio, settings)

    run_batch(client, StoreTransport(), paths)
    first = {record.id: record.full_ref for record in client.store.read_all()}
    _, report, _ = run_batch(client, StoreTransport(), paths)
    second = {record.id: record.full_ref for record in client.store.read_all()}

    assert report.total_count == 2
    assert first.keys() == second.keys()
    assert all(first[record_id] != second[record_id] for record_id in first)


def test_failure_halts_batch_and_keeps_published_items(tmp_path: Path, fake_minio, settings) -> None:
    paths = [make_image(tmp_path, "a.jpg", "2025-09-01"), make_image(tmp_path, "b.jpg", "2025-09-03")]
    client = FakeArchiveClient(fake_minio, settings)
    transport = StoreTransport(fail_on="_b.jpg")

    orchestrator, report, statuses = run_batch(client, transport, paths)

    assert report.halted
    assert report.halted_at == "b.jpg"
    assert "500" in report.reason
    assert [record.id for record in report.records] == ["ph-2025-09-01-phone-camera-001"]
    assert [record.id for record in client.store.read_all()] == ["ph-2025-09-01-phone-camera-001"]
    assert statuses[-1].startswith("Failed on b.jpg")
    assert orchestrator.state is IngestState.HALTED
    assert orchestrator.items == []


def test_rejected_content_type_halts_before_upload(tmp_path: Path, fake_minio, settings) -> None:
    path = tmp_path / "scan.tiff"
    Image.new("RGB", (8, 8)).save(path, format="TIFF")
    client = FakeArchiveClient(fake_minio, settings)
    transport = StoreTransport()

    _, report, _ = run_batch(client, transport, [path])

    assert report.halted_at == "scan.tiff"
    assert transport.objects == {}
    assert client.store.read_all() == []


def test_events_follow_state_machine(tmp_path: Path, fake_minio, settings) -> None:
    path = make_image(tmp_path, "solo.jpg", "2025-09-02")
    client = FakeArchiveClient(fake_minio, settings)

    async def _collect():
        async with httpx.AsyncClient(transport=httpx.MockTransport(StoreTransport())) as http:
            orchestrator = IngestOrchestrator(client, ObjectWriter(http), kind=RecordKind.SCREENSHOT)
            await orchestrator.select_files([path])
            assert orchestrator.state is IngestState.FILES_SELECTED
            return [event async for event in orchestrator.events()]

    events = asyncio.run(_collect())

    assert [event.state for event in events] == [
        IngestState.SIGNING,
        IngestState.UPLOADING,
        IngestState.PUBLISHING,
        IngestState.DONE,
    ]
    assert events[2].record.id == "ss-2025-09-02-game-001"
    assert events[2].record.source_label == "Game"


def test_dry_run_builds_records_without_network(tmp_path: Path) -> None:
    good = make_image(tmp_path, "beach_day.jpg", "2025-08-30")
    broken = tmp_path / "broken.jpg"
    broken.write_bytes(b"not an image")
    stamp = datetime.fromisoformat("2025-08-31T09:00:00").timestamp()
    os.utime(broken, (stamp, stamp))

    async def _run():
        orchestrator = IngestOrchestrator(
            dry_run=True, source="Bob's Camera", location="Lisbon", tags=["trip", " "]
        )
        async with orchestrator:
            await orchestrator.select_files([broken, good])
            return await orchestrator.run()

    report = asyncio.run(_run())

    assert report.dry_run
    first, second = report.records
    assert first.id == "ph-2025-08-30-bobs-camera-001"
    assert first.title == "beach day"
    assert first.full_ref == "images/photos/beach_day.jpg"
    assert first.resolution == "32x16"
    assert first.location_label == "Lisbon"
    assert first.tags == ["trip"]
    assert second.id == "ph-2025-08-31-bobs-camera-002"
    assert second.resolution is None
    assert second.year == 2025


def test_reset_and_reselection_release_streams(tmp_path: Path) -> None:
    first = make_image(tmp_path, "a.jpg", "2025-09-01")
    second = make_image(tmp_path, "b.jpg", "2025-09-02")

    async def _run():
        orchestrator = IngestOrchestrator(dry_run=True)
        selected = await orchestrator.select_files([first])
        stream = selected[0].stream
        reselected = await orchestrator.select_files([second])
        superseded_closed = stream.closed
        next_stream = reselected[0].stream
        orchestrator.reset()
        return superseded_closed, next_stream.closed, orchestrator

    superseded_closed, reset_closed, orchestrator = asyncio.run(_run())

    assert superseded_closed
    assert reset_closed
    assert orchestrator.items == []
    assert orchestrator.state is IngestState.IDLE


def test_abandoned_run_does_not_lock_the_orchestrator(tmp_path: Path) -> None:
    first = make_image(tmp_path, "a.jpg", "2025-09-01")
    second = make_image(tmp_path, "b.jpg", "2025-09-02")

    async def _run():
        async with IngestOrchestrator(dry_run=True) as orchestrator:
            await orchestrator.select_files([first, second])
            events = orchestrator.events()
            await events.__anext__()

        orchestrator.reset()
        reselected = await orchestrator.select_files([second])
        await events.aclose()
        return reselected

    reselected = asyncio.run(_run())

    assert [item.filename for item in reselected] == ["b.jpg"]
    assert not reselected[0].stream.closed
    reselected[0].release()


def test_run_without_selection_is_an_error() -> None:
    orchestrator = IngestOrchestrator(dry_run=True)

    with pytest.raises(RuntimeError):
        asyncio.run(orchestrator.run())


def test_live_run_requires_client_and_writer() -> None:
    with pytest.raises(ValueError):
        IngestOrchestrator()


def test_cli_dry_run_prints_records(tmp_path: Path) -> None:
    path = make_image(tmp_path, "sunset.jpg", "2025-09-01")

    result = CliRunner().invoke(cli, ["ingest", str(path), "--type", "screenshot", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "Prepared 1/1: sunset.jpg" in result.output
    assert '"src": "images/screenshots/sunset.jpg"' in result.output
    assert '"id": "ss-2025-09-01-game-001"' in result.output
