"""
Global Exception Handlers for the Plugin Runtime

Every error leaving the admin API or the asset proxy has the same shape:

{
    "error": {
        "status_code": 404,
        "error_code": "RESOURCE_PLUGIN_NOT_INSTALLED",
        "message": "Installed plugin with id 'toc' not found",
        "type": "Not Found",
        "details": {"resource_type": "Installed plugin", "resource_id": "toc"},
        "path": "/api/admin/plugins/toc"
    }
}

`error_code`, `details` and `path` are omitted when empty. The registry
credential and internal exception text never appear in a response.
"""

import logging
from typing import Any, Union

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from plugin_runtime.exceptions import ErrorCode, PluginRuntimeError

logger = logging.getLogger(__name__)

_ERROR_TYPES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    422: "Validation Error",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
}

# Error codes for plain HTTP errors raised by Starlette (unknown route, wrong method, ...).
_HTTP_ERROR_CODES = {
    400: ErrorCode.VALIDATION_FAILED,
    401: ErrorCode.AUTH_FAILED,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    422: ErrorCode.VALIDATION_FAILED,
    429: ErrorCode.RATE_LIMIT_EXCEEDED,
    500: ErrorCode.INTERNAL_ERROR,
    502: ErrorCode.UPSTREAM_UNAVAILABLE,
}


def get_error_type(status_code: int) -> str:
    return _ERROR_TYPES.get(status_code, "Error")


def get_http_error_code(status_code: int) -> str:
    return _HTTP_ERROR_CODES.get(status_code, ErrorCode.UNKNOWN_ERROR).value


def create_error_response(
    status_code: int,
    message: str,
    error_code: str | ErrorCode | None = None,
    details: dict[str, Any] | None = None,
    path: str | None = None,
) -> JSONResponse:
    """Build the JSON error envelope; empty optional fields are left out."""
    body: dict[str, Any] = {"status_code": status_code, "message": message, "type": get_error_type(status_code)}
    if error_code:
        body["error_code"] = error_code.value if isinstance(error_code, ErrorCode) else error_code
    if details:
        body["details"] = details
    if path:
        body["path"] = path
    return JSONResponse(status_code=status_code, content={"error": body})


# ── Handlers ──────────────────────────────────────────────────────────────────


async def plugin_runtime_exception_handler(request: Request, exc: PluginRuntimeError) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}",
        extra={"status_code": exc.status_code, "path": request.url.path},
    )
    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details or None,
        path=request.url.path,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(
        f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}",
        extra={"status_code": exc.status_code, "path": request.url.path},
    )
    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=get_http_error_code(exc.status_code),
        path=request.url.path,
    )


def _field_errors(exc: Union[RequestValidationError, PydanticValidationError]) -> list[dict[str, str]]:
    """Flatten pydantic errors to `{field, message, type}`; the `body` location prefix is dropped."""
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error["loc"] if part != "body"]
        errors.append({"field": ".".join(location), "message": error["msg"], "type": error["type"]})
    return errors


async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, PydanticValidationError]
) -> JSONResponse:
    errors = _field_errors(exc)
    logger.warning(
        f"Rejected request body on {request.url.path}: {', '.join(e['field'] for e in errors)}",
        extra={"status_code": status.HTTP_422_UNPROCESSABLE_ENTITY, "path": request.url.path},
    )
    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code=ErrorCode.VALIDATION_FAILED,
        details={"validation_errors": errors},
        path=request.url.path,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Full traceback goes to the log only.
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
        exc_info=exc,
        extra={"method": request.method, "path": request.url.path},
    )
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code=ErrorCode.INTERNAL_ERROR,
        path=request.url.path,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PluginRuntimeError, plugin_runtime_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    logger.debug("Exception handlers registered")
