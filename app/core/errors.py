"""
Standardized Error Handling for LegalWatch.

Domain exceptions for the ingestion and detection engines, plus the
FastAPI handlers that turn them into consistent JSON envelopes.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================

class LegalWatchError(Exception):
    """Base exception for LegalWatch-specific errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "legalwatch_error",
        status_code: int = 500,
        details: Optional[list[dict]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class NotFoundError(LegalWatchError):
    """Resource not found."""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} '{identifier}' not found"
        super().__init__(
            message=message,
            error_code="not_found",
            status_code=404,
        )


class ValidationError(LegalWatchError):
    """Malformed input that passed schema validation."""

    def __init__(self, message: str, details: Optional[list[dict]] = None):
        super().__init__(
            message=message,
            error_code="validation_error",
            status_code=400,
            details=details,
        )


class ConfigurationError(LegalWatchError):
    """Missing credentials or settings; fatal for a whole batch."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="configuration_error",
            status_code=503,
        )


class FetchError(LegalWatchError):
    """Legal source could not be downloaded."""

    def __init__(self, source_url: str, message: str):
        self.source_url = source_url
        super().__init__(
            message=f"Fetch failed for {source_url}: {message}",
            error_code="fetch_error",
            status_code=502,
        )


class ParseError(LegalWatchError):
    """Legal text could not be turned into units."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="parse_error",
            status_code=422,
        )


class PersistError(LegalWatchError):
    """A corpus row could not be written."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="persist_error",
            status_code=500,
        )


class ClassificationError(LegalWatchError):
    """External classification call failed or returned garbage."""

    def __init__(self, provider: str, message: str = "classification failed"):
        super().__init__(
            message=f"{provider}: {message}",
            error_code="classification_error",
            status_code=502,
        )


# =============================================================================
# Exception Handlers
# =============================================================================

def get_request_id(request: Request) -> Optional[str]:
    """Extract request ID from request."""
    return request.headers.get("X-Request-Id")


async def legalwatch_error_handler(request: Request, exc: LegalWatchError) -> JSONResponse:
    """Handle LegalWatch-specific exceptions."""
    logger.warning(
        "LegalWatchError: %s - %s",
        exc.error_code,
        exc.message,
        extra={"error_code": exc.error_code, "path": request.url.path},
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.details,
            "request_id": get_request_id(request),
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle standard HTTP exceptions."""
    error_codes = {
        400: "bad_request",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        422: "validation_error",
        500: "internal_error",
        502: "bad_gateway",
        503: "service_unavailable",
    }

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": error_codes.get(exc.status_code, "error"),
            "message": str(exc.detail) if exc.detail else f"HTTP {exc.status_code}",
            "request_id": get_request_id(request),
        },
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors."""
    details = []
    for error in exc.errors():
        details.append({
            "loc": [str(part) for part in error.get("loc", [])],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        })

    logger.info(
        "Validation error on %s: %d issues",
        request.url.path,
        len(details),
    )

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "validation_error",
            "message": "Request validation failed",
            "details": details,
            "request_id": get_request_id(request),
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "Unhandled exception on %s: %s",
        request.url.path,
        str(exc),
        exc_info=True,
        extra={"path": request.url.path, "method": request.method},
    )

    # Don't expose internal details
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "internal_error",
            "message": "An unexpected error occurred",
            "request_id": get_request_id(request),
        },
    )


# =============================================================================
# Setup Function
# =============================================================================

def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI app.

    Call during app initialization:
        setup_exception_handlers(app)
    """
    app.add_exception_handler(LegalWatchError, legalwatch_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)


__all__ = [
    "LegalWatchError",
    "NotFoundError",
    "ValidationError",
    "ConfigurationError",
    "FetchError",
    "ParseError",
    "PersistError",
    "ClassificationError",
    "setup_exception_handlers",
]
