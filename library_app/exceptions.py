"""
Error taxonomy of the library service and its HTTP translation.

Services raise these; the handlers registered in ``main`` turn them into
structured JSON responses. Anything else that escapes a route is logged and
answered with a generic 500 so internal error text never reaches the client.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LibraryError(Exception):
    """Base exception for library errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, detail: Any = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class NotFoundError(LibraryError):
    """Entity absent."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class UnauthorizedError(LibraryError):
    """Missing or invalid caller identity or credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


class ForbiddenError(LibraryError):
    """Caller is known but lacks the required role."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class ValidationError(LibraryError):
    """Mismatched ids, missing required fields."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class ConflictError(LibraryError):
    """The request clashes with current state, e.g. a book already borrowed."""

    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


def create_error_response(
    error: str,
    code: str,
    status_code: int,
    detail: Optional[Any] = None,
) -> JSONResponse:
    """Create standardized error response."""
    headers = None
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "code": code,
            "detail": detail,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        headers=headers,
    )


async def library_error_handler(request: Request, exc: LibraryError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return create_error_response(exc.message, exc.code, exc.status_code, exc.detail)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return create_error_response(
        "Internal server error",
        LibraryError.code,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return create_error_response(
        "Request validation failed",
        ValidationError.code,
        ValidationError.status_code,
        jsonable_encoder(exc.errors()),
    )
