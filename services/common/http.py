"""Shared HTTP helpers for the API routers: uploads and error translation."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from structlog.stdlib import BoundLogger

from services.common.audio import UnsupportedFormatError
from services.common.pipelines import PipelineUnavailableError
from services.common.similarity import UndefinedSimilarityError

DEFAULT_MAX_UPLOAD_BYTES = 25 * 1024 * 1024


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return "; ".join(parts) or "Invalid request"


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse({"detail": _validation_message(exc)}, status_code=400)


def register_exception_handlers(app: FastAPI) -> None:
    """Answer malformed requests with 400 instead of FastAPI's default 422."""
    app.add_exception_handler(RequestValidationError, _validation_error_handler)


async def read_upload(
    upload: UploadFile, *, field: str, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
) -> bytes:
    """Read an uploaded file, rejecting empty and oversized payloads."""
    data = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail=f"No {field} file provided")
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"{field.capitalize()} file exceeds {max_bytes} bytes",
        )
    return data


def max_upload_bytes(request: Request) -> int:
    """Upload limit configured on the app, in bytes."""
    return getattr(request.app.state, "max_upload_bytes", DEFAULT_MAX_UPLOAD_BYTES)


def http_error(
    exc: Exception,
    failure_message: str,
    *,
    logger: BoundLogger,
    event: str,
    **log_fields: Any,
) -> HTTPException:
    """Translate a service-layer exception into the HTTPException to raise.

    Client mistakes keep their message, unavailable models map to 503 and
    everything else becomes a 500 carrying ``failure_message``.
    """
    if isinstance(exc, HTTPException):
        return exc
    if isinstance(exc, UnsupportedFormatError):
        logger.warning(event, error=str(exc), **log_fields)
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, UndefinedSimilarityError):
        logger.warning(event, error=str(exc), **log_fields)
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, PipelineUnavailableError):
        logger.error(event, error=str(exc), pipeline=exc.name, **log_fields)
        return HTTPException(
            status_code=503, detail=f"Model '{exc.name}' is not available"
        )
    logger.error(
        event, error=str(exc), error_type=type(exc).__name__, **log_fields
    )
    return HTTPException(status_code=500, detail=failure_message)


__all__ = [
    "DEFAULT_MAX_UPLOAD_BYTES",
    "http_error",
    "max_upload_bytes",
    "read_upload",
    "register_exception_handlers",
]
