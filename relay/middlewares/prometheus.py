"""
Prometheus metrics middleware for HTTP requests.

This middleware tracks request counts, durations and in-progress requests
for the relay's HTTP endpoints.
"""

import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from relay.utils.metrics import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
)

# Endpoint label for paths no route is registered for
UNMATCHED_ENDPOINT = "unmatched"


def _endpoint_label(request: Request) -> str:
    """
    Map a request to a bounded endpoint label.

    The webhook is publicly reachable, so arbitrary paths from scanners are
    folded into one label instead of creating a time series each.

    Args:
        request: The incoming HTTP request.

    Returns:
        The request path if a route serves it, `unmatched` otherwise.
    """
    path = request.url.path
    known_paths = {getattr(route, "path", None) for route in request.app.routes}
    return path if path in known_paths else UNMATCHED_ENDPOINT


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware to track Prometheus metrics for HTTP requests.

    Tracks the following metrics:
    - http_requests_total: Counter of total requests by method, endpoint, and status
    - http_request_duration_seconds: Histogram of request durations
    - http_requests_in_progress: Gauge of in-progress requests
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        """
        Handle the request and record its metrics.

        A request whose handler raises is recorded with status 500 and the
        exception is re-raised.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or endpoint handler.

        Returns:
            HTTP response from the endpoint.
        """
        method = request.method
        endpoint = _endpoint_label(request)

        http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()
        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            http_request_duration_seconds.labels(
                method=method, endpoint=endpoint
            ).observe(time.time() - start_time)
            http_requests_total.labels(
                method=method, endpoint=endpoint, status_code=status_code
            ).inc()
            http_requests_in_progress.labels(
                method=method, endpoint=endpoint
            ).dec()
