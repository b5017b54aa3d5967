"""MQTT realtime transport: topics, handshake, lifecycle and pipelines."""
