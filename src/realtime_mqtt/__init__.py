"""Realtime MQTT client for a push-messaging backend."""

__version__ = "0.1.0"
