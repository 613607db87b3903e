"""
Middleware for request correlation ID tracking.

Every webhook call gets a short correlation ID so that the log lines of one
call (validation branch, broadcast outcome) can be grouped together.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_ID_HEADER = "X-Correlation-ID"
CORRELATION_ID_LENGTH = 8

# Context variable for storing correlation ID per request
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def _resolve_correlation_id(header_value: str | None) -> str:
    """
    Pick the correlation ID for a request.

    Webhook publishers may forward their own trace ID; blank values are
    treated as missing.

    Args:
        header_value: Raw X-Correlation-ID header, if any.

    Returns:
        The caller's ID cut to 8 characters, or a fresh 8-char UUID prefix.
    """
    cid = (header_value or "").strip()
    if not cid:
        cid = uuid.uuid4().hex
    return cid[:CORRELATION_ID_LENGTH]


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation IDs to HTTP requests.

    This middleware:
    - Reuses the caller's X-Correlation-ID header or generates a new ID
    - Stores it in request.state.request_id and in a context variable,
      where the log formatters pick it up
    - Echoes it in the response headers so publishers can match log lines
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        """
        Attach a correlation ID to the request and its response.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or endpoint handler.

        Returns:
            Response carrying the X-Correlation-ID header.
        """
        cid = _resolve_correlation_id(request.headers.get(CORRELATION_ID_HEADER))

        request.state.request_id = cid
        token = correlation_id.set(cid)

        try:
            response = await call_next(request)
        finally:
            correlation_id.reset(token)

        response.headers[CORRELATION_ID_HEADER] = cid
        return response


def get_correlation_id() -> str:
    """
    Get the correlation ID for the current request context.

    Returns:
        The correlation ID string, or empty string outside a request.
    """
    return correlation_id.get()
