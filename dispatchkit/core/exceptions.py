"""
Custom exception classes.

Represent startup misconfiguration and request-time transport errors.
"""

import logging
from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """Base exception class for the dispatch layer."""

    pass


class RouteConfigError(DispatchError):
    """Raised at startup when the route table is malformed."""

    pass


class BodyParseError(DispatchError):
    """Raised when the request body cannot be decoded."""

    def __init__(self, content_type: str, cause: Exception, status_code: int = 400):
        self.content_type = content_type
        self.cause = cause
        self.status_code = status_code
        super().__init__(f"Failed to parse {content_type} body: {cause}")


class ResponseAlreadySentError(DispatchError, RuntimeError):
    """Raised when writing to a response that was already committed."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot {operation} after the response was sent")


class CsrfError(DispatchError):
    """CSRF token is missing, expired or invalid."""

    pass


def status_hint(error: Optional[BaseException]) -> Optional[int]:
    """Return the HTTP status an error carries, if any."""
    code = getattr(error, "status_code", None)
    if isinstance(code, int) and 100 <= code <= 599:
        return code
    return None


# ===========================================
# Exception Handlers
# ===========================================


async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler for exceptions escaping the dispatch pipeline.
    """
    logger.error(
        f"Global exception handler caught: {exc}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal Server Error"},
    )
