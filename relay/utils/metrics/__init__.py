"""
Prometheus metrics definitions.

All metrics are re-exported here so callers import them from one place:

    from relay.utils.metrics import ws_connections_active
    from relay.utils.metrics import webhook_requests_total
"""

from relay.utils.metrics.http import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
    webhook_requests_total,
)
from relay.utils.metrics.websocket import (
    broadcast_duration_seconds,
    broadcasts_total,
    ws_connections_active,
    ws_connections_total,
    ws_messages_sent_total,
    ws_send_failures_total,
)

__all__ = [
    "http_requests_total",
    "http_request_duration_seconds",
    "http_requests_in_progress",
    "webhook_requests_total",
    "ws_connections_active",
    "ws_connections_total",
    "ws_messages_sent_total",
    "ws_send_failures_total",
    "broadcasts_total",
    "broadcast_duration_seconds",
]
