"""
API middleware: error envelope and exception handlers.
"""
from bricolage.api.middleware.error_handler import (
    AppException,
    NotFoundException,
    ForbiddenException,
    error_response,
    register_error_handlers,
)

__all__ = [
    "AppException",
    "NotFoundException",
    "ForbiddenException",
    "error_response",
    "register_error_handlers",
]
