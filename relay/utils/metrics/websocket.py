"""
Prometheus metrics for subscriber connections and broadcasts.

This module defines metrics for tracking subscriber connections, delivered
and failed broadcast writes, and broadcast durations.
"""

from relay.utils.metrics._helpers import (
    _get_or_create_counter,
    _get_or_create_gauge,
    _get_or_create_histogram,
)

ws_connections_active = _get_or_create_gauge(
    "ws_connections_active", "Number of active subscriber connections"
)

ws_connections_total = _get_or_create_counter(
    "ws_connections_total",
    "Total subscriber connection attempts",
    ["status"],  # accepted, upgrade_failed
)

ws_messages_sent_total = _get_or_create_counter(
    "ws_messages_sent_total", "Total messages delivered to subscribers"
)

ws_send_failures_total = _get_or_create_counter(
    "ws_send_failures_total",
    "Total failed subscriber writes (subscriber dropped)",
)

broadcasts_total = _get_or_create_counter(
    "broadcasts_total", "Total broadcasts dispatched"
)

broadcast_duration_seconds = _get_or_create_histogram(
    "broadcast_duration_seconds",
    "Time spent fanning one message out to all subscribers",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)


__all__ = [
    "ws_connections_active",
    "ws_connections_total",
    "ws_messages_sent_total",
    "ws_send_failures_total",
    "broadcasts_total",
    "broadcast_duration_seconds",
]
