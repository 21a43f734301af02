"""
Exception base classes and the handlers that render them.

Every error leaving the API has the same envelope:

    {"error": <message>, "code": <stable code>, "correlation_id": ..., "details": {...}}

Booking errors (see `bricolage.services.errors`) subclass `AppException` and
are logged at WARNING; anything unanticipated is a 500 with a stack trace.
"""
import logging
from typing import Optional, Dict, Any
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from bricolage.lib.logging import get_logger, get_correlation_id

logger = get_logger(__name__)

# Codes for errors raised by FastAPI/Starlette themselves
HTTP_ERROR_CODES = {
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
}


class AppException(Exception):
    """Base application exception."""

    code = "APP_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(AppException):
    """A booking, quote or user does not exist."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Optional[Any] = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={
                "resource": resource,
                "resource_id": str(resource_id) if resource_id is not None else None,
            },
        )


class ForbiddenException(AppException):
    code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
        )


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or get_correlation_id() or "unknown"


def error_response(
    request: Request,
    status_code: int,
    message: str,
    code: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build the error envelope shared by every handler below."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": message,
            "code": code,
            "correlation_id": _correlation_id(request),
            "details": details or {},
        },
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render a typed application error (guard failure, forbidden, not found)."""
    log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        log_level,
        f"Request rejected: {exc.message}",
        extra={
            "status_code": exc.status_code,
            "code": exc.code,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
    )
    return error_response(request, exc.status_code, exc.message, exc.code, exc.details)


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Request bodies failing schema validation are reported as INVALID_INPUT."""
    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]

    logger.warning(
        "Validation error",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )
    return error_response(
        request,
        422,
        "Validation error",
        "INVALID_INPUT",
        {"errors": errors},
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Missing routes, bad bearer tokens and other framework-level errors."""
    logger.warning(
        f"HTTP exception: {exc.detail}",
        extra={"status_code": exc.status_code, "path": request.url.path, "method": request.method},
    )
    return error_response(
        request,
        exc.status_code,
        str(exc.detail),
        HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Infrastructure failures: logged with stack trace, reported without internals."""
    logger.error(
        f"Unhandled exception: {exc}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        "INTERNAL_ERROR",
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
