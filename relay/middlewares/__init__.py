from relay.middlewares.correlation_id import (
    CorrelationIDMiddleware,
    get_correlation_id,
)
from relay.middlewares.logging_context import LoggingContextMiddleware
from relay.middlewares.prometheus import PrometheusMiddleware

__all__ = [
    "CorrelationIDMiddleware",
    "LoggingContextMiddleware",
    "PrometheusMiddleware",
    "get_correlation_id",
]
