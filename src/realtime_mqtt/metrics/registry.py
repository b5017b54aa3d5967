"""Prometheus metrics registry for the realtime MQTT client."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from realtime_mqtt.mqtt.topics import DEFAULT_TOPIC_IDS

CONNECTION_STATES: Final = ("idle", "connecting", "connected", "disconnecting", "shut_down")
OTHER_TOPIC: Final = "other"
_KNOWN_TOPICS: Final = frozenset(DEFAULT_TOPIC_IDS) | frozenset(DEFAULT_TOPIC_IDS.values())

# Connection metrics
realtime_connect_attempts_total: Final = Counter(  # type: ignore[assignment]
    "realtime_connect_attempts_total",
    "Total broker connect attempts",
    ["outcome"],
)

realtime_connect_latency_seconds: Final = Histogram(  # type: ignore[assignment]
    "realtime_connect_latency_seconds",
    "Broker connect latency in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

realtime_reconnect_scheduled_total: Final = Counter(  # type: ignore[assignment]
    "realtime_reconnect_scheduled_total",
    "Total reconnect attempts scheduled",
    ["reason"],
)

realtime_keepalive_expired_total: Final = Counter(  # type: ignore[assignment]
    "realtime_keepalive_expired_total",
    "Total keepalive watchdog expiries (forced disconnects)",
)

realtime_connection_state: Final = Gauge(  # type: ignore[assignment]
    "realtime_connection_state",
    "Current connection state",
    ["state"],
)

# Inbound metrics
realtime_envelopes_received_total: Final = Counter(  # type: ignore[assignment]
    "realtime_envelopes_received_total",
    "Total inbound envelopes received",
    ["topic"],
)

realtime_envelopes_dropped_total: Final = Counter(  # type: ignore[assignment]
    "realtime_envelopes_dropped_total",
    "Total inbound envelopes dropped before dispatch",
    ["reason"],
)

realtime_messages_handled_total: Final = Counter(  # type: ignore[assignment]
    "realtime_messages_handled_total",
    "Total decoded messages passed to handlers",
    ["module", "outcome"],
)

# Outbound metrics
realtime_publish_total: Final = Counter(  # type: ignore[assignment]
    "realtime_publish_total",
    "Total outbound publishes",
    ["topic", "outcome"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def topic_label(topic: str) -> str:
    """Label value for a topic; anything outside the default table shares one label."""
    return topic if topic in _KNOWN_TOPICS else OTHER_TOPIC


def record_connect_attempt(outcome: str) -> None:
    """Record a connect attempt."""
    realtime_connect_attempts_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_connect_latency(latency_seconds: float) -> None:
    realtime_connect_latency_seconds.observe(latency_seconds)  # type: ignore[no-untyped-call]


def record_reconnect_scheduled(reason: str) -> None:
    """Record a scheduled reconnect."""
    realtime_reconnect_scheduled_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_keepalive_expired() -> None:
    realtime_keepalive_expired_total.inc()  # type: ignore[no-untyped-call]


def record_connection_state(state: str) -> None:
    """Record connection state change."""
    # Set gauge to 1 for current state, 0 for all others
    for s in CONNECTION_STATES:
        value = 1 if s == state else 0
        realtime_connection_state.labels(state=s).set(value)  # type: ignore[no-untyped-call]


def record_envelope_received(topic: str) -> None:
    """Record an inbound envelope."""
    realtime_envelopes_received_total.labels(topic=topic_label(topic)).inc()  # type: ignore[no-untyped-call]


def record_envelope_dropped(reason: str) -> None:
    """Record an inbound envelope dropped before dispatch."""
    realtime_envelopes_dropped_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_message_handled(module: str, outcome: str) -> None:
    """Record a decoded message handler outcome."""
    realtime_messages_handled_total.labels(module=module, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_publish(topic: str, outcome: str) -> None:
    """Record an outbound publish."""
    realtime_publish_total.labels(topic=topic_label(topic), outcome=outcome).inc()  # type: ignore[no-untyped-call]
