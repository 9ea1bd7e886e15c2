from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional

import httpx
import orjson
import typer
import uvicorn

from .api.app import create_app
from .config import IngestSettings, get_settings
from .ingest import IngestOrchestrator, IngestReport
from .logging import setup_logging
from .models import RecordKind
from .sdk import ArchiveClient
from .storage import ObjectWriter

cli = typer.Typer(help="Visual archive service and ingest tools")


@cli.command()
def serve(host: str = "0.0.0.0", port: int = 8090) -> None:
    """Start the archive service using uvicorn."""

    settings = get_settings()
    setup_logging(settings.log_level)
    app = create_app(settings)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower(), lifespan="on")


async def _ingest(
    paths: List[Path],
    kind: RecordKind,
    source: Optional[str],
    location: Optional[str],
    tags: List[str],
    settings: IngestSettings,
    dry_run: bool,
) -> IngestReport:
    if dry_run:
        orchestrator = IngestOrchestrator(
            kind=kind, source=source, location=location, tags=tags, dry_run=True
        )
        async with orchestrator:
            await orchestrator.select_files(paths)
            return await orchestrator.run(on_status=typer.echo)

    async with httpx.AsyncClient(timeout=settings.request_timeout) as http:
        client = ArchiveClient(settings.api_url, settings.upload_token, client=http)
        orchestrator = IngestOrchestrator(
            client,
            ObjectWriter(http),
            kind=kind,
            source=source,
            location=location,
            tags=tags,
        )
        async with orchestrator:
            await orchestrator.select_files(paths)
            return await orchestrator.run(on_status=typer.echo)


@cli.command()
def ingest(
    paths: List[Path] = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    kind: RecordKind = typer.Option(RecordKind.PHOTO, "--type", help="photo or screenshot"),
    source: Optional[str] = typer.Option(None, help="Provenance label for every file"),
    location: Optional[str] = typer.Option(None, help="Location label for every file"),
    tag: Optional[List[str]] = typer.Option(None, "--tag", help="Tag applied to every file"),
    api_url: Optional[str] = typer.Option(None, envvar="ARCHIVE_API_URL"),
    token: Optional[str] = typer.Option(None, envvar="ARCHIVE_UPLOAD_TOKEN"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print catalog entries without uploading"),
) -> None:
    """Upload images and publish one catalog record per file."""

    setup_logging("WARNING")
    settings = IngestSettings()
    if api_url:
        settings.api_url = api_url
    if token:
        settings.upload_token = token

    report = asyncio.run(
        _ingest(list(paths), kind, source, location, list(tag or []), settings, dry_run)
    )
    if dry_run:
        documents = [record.to_document() for record in report.records]
        typer.echo(orjson.dumps(documents, option=orjson.OPT_INDENT_2).decode())
    if report.halted:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    cli()
