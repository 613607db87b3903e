"""Custom filters for uvicorn access logging."""

import logging

from relay.settings import app_settings


def _access_log_path(record: logging.LogRecord) -> str | None:
    """
    Extract the request path from a uvicorn access log record.

    uvicorn logs access lines with the arguments
    `(client_addr, method, full_path, http_version, status_code)`.

    Returns:
        The path without query string, or None for other records.
    """
    args = record.args
    if isinstance(args, tuple) and len(args) >= 3 and isinstance(args[2], str):
        return args[2].split("?", 1)[0]
    return None


class ExcludeMetricsFilter(logging.Filter):
    """
    Logging filter to exclude monitoring endpoint requests from access logs.

    Health checks and Prometheus scraping would otherwise drown the webhook
    calls in uvicorn's access log. The excluded paths are configurable via
    the LOG_EXCLUDED_PATHS setting.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Decide whether an access log record is written.

        The request path must equal an excluded path, so a webhook call
        whose query string mentions `/health` is still logged. Records that
        do not carry uvicorn's access arguments fall back to a substring
        check on the rendered message.

        Args:
            record: The log record to evaluate.

        Returns:
            False for requests to an excluded path, True otherwise.
        """
        path = _access_log_path(record)
        if path is not None:
            return path not in app_settings.LOG_EXCLUDED_PATHS

        message = record.getMessage()
        return not any(
            excluded in message for excluded in app_settings.LOG_EXCLUDED_PATHS
        )
