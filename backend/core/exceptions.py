"""
Base exceptions and API error rendering.

Domain modules raise subclasses of DomainError; the FastAPI handlers below
turn them into consistent JSON error responses.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base exception for business rule violations"""

    error_code = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)


class TransientStoreFailure(DomainError):
    """Store or cache timeout/conflict. Callers retry after reloading state."""

    error_code = "TRANSIENT_STORE_FAILURE"

    def __init__(self, message: str = "Temporary storage failure, please retry"):
        super().__init__(
            message=message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


async def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
    """Render a domain error with its own status code"""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} at {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{type(exc).__name__} at {request.url.path}: {exc.message}")
    headers = None
    if isinstance(exc, TransientStoreFailure):
        headers = {"Retry-After": "1"}
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "error_code": exc.error_code,
            "path": str(request.url.path),
        },
        headers=headers,
    )


def register_exception_handlers(app):
    """Register domain exception handlers with the FastAPI app"""
    app.add_exception_handler(DomainError, handle_domain_error)
