from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sunbeam.api.schemas import APIResponse
from sunbeam.logging import get_logger
from sunbeam.service.errors import InvalidFieldsError, ServiceError

logger = get_logger(__name__)

_STATUS_TO_REASON = {
    400: "BadRequest",
    401: "Unauthorized",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    429: "RateLimited",
    500: "InternalError",
}


def _reason_for_status(status_code: int) -> str:
    return _STATUS_TO_REASON.get(status_code, "InternalError")


def _error_response(
    status_code: int, reason: str, context: Optional[str] = None
) -> JSONResponse:
    """Render ``{"done": false, "reason": ..., "context": ...}``."""
    envelope = APIResponse(done=False, reason=reason, context=context)
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg', 'invalid')}" if location else error.get("msg", "invalid"))
    return "; ".join(parts) or "invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers so every failure leaves as an APIResponse envelope."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
        )
        return _error_response(exc.status_code, exc.error_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        message = _format_validation_errors(exc)
        logger.warning(
            "request_validation_error",
            path=request.url.path,
            method=request.method,
            message=message,
        )
        error = InvalidFieldsError(message)
        return _error_response(error.status_code, error.error_code, error.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code >= 500:
            logger.error(
                "http_error",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
                message=str(exc.detail),
            )
        return _error_response(
            exc.status_code, _reason_for_status(exc.status_code), str(exc.detail)
        )

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return _error_response(500, "InternalError", "internal server error")
