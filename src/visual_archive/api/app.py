from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..config import ArchiveSettings, get_settings
from ..errors import ArchiveError
from ..logging import get_logger
from ..models import ErrorEnvelope
from .deps import get_archive_settings
from .routes import catalog, uploads

logger = get_logger("archive.api")

CORRELATION_HEADER = "X-Correlation-ID"


def _make_correlation_id(prefix: str) -> str:
    now = datetime.now(tz=UTC).isoformat()
    return f"{prefix}_{now}_{uuid.uuid4().hex[:8]}"


def _correlation_id(request: Request) -> str:
    value = getattr(request.state, "correlation_id", None)
    if not value:
        value = _make_correlation_id("va")
        request.state.correlation_id = value
    return value


def _error_response(
    status_code: int,
    error_code: str,
    message: str,
    correlation_id: str,
    *,
    retryable: bool = False,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    envelope = ErrorEnvelope(
        error_code=error_code,
        message=message,
        retryable=retryable,
        correlation_id=correlation_id,
        details=details or {},
    )
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(),
        headers={CORRELATION_HEADER: correlation_id, "Cache-Control": "no-store"},
    )


def create_app(settings: Optional[ArchiveSettings] = None) -> FastAPI:
    app = FastAPI(title="Visual Archive", version=__version__)
    if settings is None:
        settings = get_settings()
    else:
        app.dependency_overrides[get_archive_settings] = lambda: settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        expose_headers=[CORRELATION_HEADER],
    )

    @app.middleware("http")
    async def correlation_and_cache_headers(request: Request, call_next):
        correlation_id = _correlation_id(request)
        response = await call_next(request)
        response.headers.setdefault(CORRELATION_HEADER, correlation_id)
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.exception_handler(ArchiveError)
    async def handle_archive_error(request: Request, exc: ArchiveError) -> JSONResponse:
        correlation_id = _correlation_id(request)
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "archive_request_failed",
            path=request.url.path,
            error_code=exc.error_code,
            status=exc.status_code,
            message=exc.message,
            correlation_id=correlation_id,
        )
        return _error_response(
            exc.status_code,
            exc.error_code,
            exc.message,
            correlation_id,
            retryable=exc.retryable,
            details=exc.details,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return _error_response(
            400,
            "REQUEST.INVALID",
            "Request body failed validation",
            _correlation_id(request),
            details={"errors": errors},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error_response(
            exc.status_code,
            f"HTTP.{exc.status_code}",
            str(exc.detail),
            _correlation_id(request),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = _correlation_id(request)
        logger.exception(
            "archive_request_crashed",
            path=request.url.path,
            error=str(exc),
            correlation_id=correlation_id,
        )
        return _error_response(
            500,
            "INTERNAL.ERROR",
            "Unexpected server error",
            correlation_id,
        )

    @app.get("/v1/healthz", tags=["system"])
    async def healthz() -> dict[str, str]:
        return {"status": "ok", "service": settings.service_name}

    app.include_router(uploads.router)
    app.include_router(catalog.router)

    return app


__all__ = ["create_app"]
