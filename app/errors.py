"""Typed service errors and their HTTP rendering.

Services raise these; the handlers registered in ``app.main`` render every
failure as ``{"success": false, "message": ...}``.
"""

import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.config import settings

logger = logging.getLogger(__name__)


class ServiceError(HTTPException):
    """Base for all typed errors raised by the service layer."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(status_code=self.status_code, detail=message or self.default_message)

    @property
    def message(self) -> str:
        return str(self.detail)


class ValidationError(ServiceError):
    """Malformed or missing input, or an illegal role/state value."""

    status_code = 400
    default_message = "Invalid request"


class ForbiddenError(ServiceError):
    status_code = 403
    default_message = "Not authorized to perform this action"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ServiceError):
    """A state-machine guard or invariant rejected the operation."""

    status_code = 409
    default_message = "Operation conflicts with current state"


class UpstreamError(ServiceError):
    """Blob store or payment processor failure. Safe to retry."""

    status_code = 502
    default_message = "Upstream service failure"


class InternalError(ServiceError):
    status_code = 500
    default_message = "Server error"


def _failure(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _failure(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return _failure(400, message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"success": False, "message": "Server error"}
    if settings.is_development:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)
