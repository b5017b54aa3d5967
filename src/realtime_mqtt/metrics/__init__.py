"""Metrics module."""

from .registry import (
    record_connect_attempt,
    record_connect_latency,
    record_connection_state,
    record_envelope_dropped,
    record_envelope_received,
    record_keepalive_expired,
    record_message_handled,
    record_publish,
    record_reconnect_scheduled,
    start_metrics_server,
)

__all__ = [
    "record_connect_attempt",
    "record_connect_latency",
    "record_connection_state",
    "record_envelope_dropped",
    "record_envelope_received",
    "record_keepalive_expired",
    "record_message_handled",
    "record_publish",
    "record_reconnect_scheduled",
    "start_metrics_server",
]
