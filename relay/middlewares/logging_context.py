"""
Middleware for injecting contextual fields into structured logs.

Fields set here end up in every JSON log line (error file, Loki) written
while the request is handled, next to the correlation ID.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from relay.logging import clear_log_context, set_log_context


class LoggingContextMiddleware(BaseHTTPMiddleware):  # type: ignore[misc]
    """
    Middleware to inject contextual fields into structured logs.

    This middleware:
    - Adds endpoint, method and client address to log context
    - Adds the publisher's User-Agent when it sends one
    - Clears log context after request completes, also on errors
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        """
        Set the log context for the duration of one request.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or endpoint handler.

        Returns:
            Response from the endpoint.
        """
        set_log_context(
            endpoint=request.url.path,
            method=request.method,
        )
        if request.client:
            set_log_context(client=f"{request.client.host}:{request.client.port}")

        user_agent = request.headers.get("user-agent")
        if user_agent:
            set_log_context(user_agent=user_agent)

        try:
            return await call_next(request)
        finally:
            clear_log_context()
