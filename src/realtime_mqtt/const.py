import os
import zoneinfo

import tzlocal

from realtime_mqtt import __version__

__all__ = [
    "LOCAL_TZ",
    "REALTIME_ACCEPT_LANGUAGE",
    "REALTIME_ANALYTICS_APP_ID",
    "REALTIME_APP_NAME",
    "REALTIME_APP_VERSION",
    "REALTIME_CAPABILITIES",
    "REALTIME_CLIENT_START_TASK_NAME",
    "REALTIME_CONNECTION_TIMEOUT",
    "REALTIME_DEBUG",
    "REALTIME_KEEPALIVE",
    "REALTIME_LOG_FORMAT",
    "REALTIME_LOG_HUMAN_OUTPUT",
    "REALTIME_LOG_JSON_FILE",
    "REALTIME_LOG_NAME",
    "REALTIME_MAX_RECONNECT_INTERVAL",
    "REALTIME_METRICS_PORT",
    "REALTIME_MIN_RECONNECT_INTERVAL",
    "REALTIME_MQTT_HOST",
    "REALTIME_MQTT_PORT",
    "REALTIME_MQTT_TLS",
    "REALTIME_PERF_THRESHOLD_MS",
    "REALTIME_PERF_TRACKING",
    "REALTIME_PLATFORM",
    "REALTIME_VERSION",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
LOCAL_TZ = zoneinfo.ZoneInfo(str(tzlocal.get_localzone()))
REALTIME_LOG_NAME: str = "realtime_mqtt"
REALTIME_VERSION: str = __version__


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, str(default))
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# Broker
REALTIME_MQTT_HOST: str = os.environ.get("REALTIME_MQTT_HOST", "edge-mqtt.facebook.com")
REALTIME_MQTT_PORT: int = _env_int("REALTIME_MQTT_PORT", 443)
REALTIME_MQTT_TLS: bool = os.environ.get("REALTIME_MQTT_TLS", "true").casefold() in YES_ANSWER
# seconds
REALTIME_KEEPALIVE: int = _env_int("REALTIME_KEEPALIVE", 900)
REALTIME_CONNECTION_TIMEOUT: float = _env_float("REALTIME_CONNECTION_TIMEOUT", 5.0)
REALTIME_MIN_RECONNECT_INTERVAL: float = _env_float("REALTIME_MIN_RECONNECT_INTERVAL", 1.0)
REALTIME_MAX_RECONNECT_INTERVAL: float = _env_float("REALTIME_MAX_RECONNECT_INTERVAL", 300.0)

# Application profile presented in the handshake
REALTIME_PLATFORM: str = os.environ.get("REALTIME_PLATFORM", "android")
REALTIME_APP_NAME: str = os.environ.get("REALTIME_APP_NAME", "Instagram")
REALTIME_APP_VERSION: str = os.environ.get("REALTIME_APP_VERSION", "107.0.0.27.121")
REALTIME_CAPABILITIES: str = os.environ.get("REALTIME_CAPABILITIES", "3brTvw==")
REALTIME_ACCEPT_LANGUAGE: str = os.environ.get("REALTIME_ACCEPT_LANGUAGE", "en-US")
REALTIME_ANALYTICS_APP_ID: str = os.environ.get("REALTIME_ANALYTICS_APP_ID", "567067343352427")

REALTIME_DEBUG = os.environ.get("REALTIME_DEBUG", "0").casefold() in YES_ANSWER

# Logging Configuration
REALTIME_LOG_FORMAT: str = os.environ.get("REALTIME_LOG_FORMAT", "human")  # "json", "human", or "both"
REALTIME_LOG_JSON_FILE: str | None = os.environ.get("REALTIME_LOG_JSON_FILE") or None
REALTIME_LOG_HUMAN_OUTPUT: str = os.environ.get("REALTIME_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path

# Performance Instrumentation
REALTIME_PERF_TRACKING: bool = os.environ.get("REALTIME_PERF_TRACKING", "true").casefold() in YES_ANSWER
_perf_threshold = os.environ.get("REALTIME_PERF_THRESHOLD_MS", "100")
REALTIME_PERF_THRESHOLD_MS: int = int(_perf_threshold) if _perf_threshold and _perf_threshold.isdigit() else 100

# Metrics (0 disables the prometheus HTTP endpoint)
REALTIME_METRICS_PORT: int = _env_int("REALTIME_METRICS_PORT", 0)

REALTIME_CLIENT_START_TASK_NAME = "RealtimeClient_START"
