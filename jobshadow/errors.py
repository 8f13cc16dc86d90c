from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

log = structlog.get_logger(__name__)


class ShadowingError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationFailure(ShadowingError):
    status_code = 400


class NotFound(ShadowingError):
    status_code = 404


class Forbidden(ShadowingError):
    status_code = 403


class Conflict(ShadowingError):
    status_code = 400


class InvalidState(Conflict):
    """The opportunity is no longer Open."""


class StorageFailure(ShadowingError):
    status_code = 500


def _body(message: str, errors: Any = None) -> dict:
    content: dict[str, Any] = {"message": message}
    if errors:
        content["errors"] = errors
    return content


async def shadowing_error_handler(request: Request, exc: ShadowingError):
    if isinstance(exc, StorageFailure):
        log.error("storage_failure", path=request.url.path, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=_body(exc.message, exc.errors))


async def request_validation_handler(_: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=_body("Invalid request data", jsonable_encoder(exc.errors())),
    )


async def http_exception_handler(_: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content=_body("Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ShadowingError, shadowing_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
