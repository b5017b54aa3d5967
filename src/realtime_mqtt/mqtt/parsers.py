"""Generic parser and handler building blocks."""

from __future__ import annotations

import json

from realtime_mqtt.events import RealtimeEvents
from realtime_mqtt.exceptions import HandlerError, ParserError
from realtime_mqtt.structs import DecodedMessage

__all__ = ["EventHandler", "JsonParser"]


class JsonParser:
    """Decodes a JSON payload into a single message for ``module``."""

    def __init__(self, module: str) -> None:
        self.module = module

    def parse(self, topic: str, payload: bytes) -> list[DecodedMessage]:
        try:
            data = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParserError(f"invalid JSON: {e}", topic) from e
        return [DecodedMessage(module=self.module, data=data)]


class EventHandler:
    """Re-emits decoded messages on the event surface under their module name."""

    def __init__(self, events: RealtimeEvents) -> None:
        self.events = events

    def handle(self, message: DecodedMessage) -> None:
        if not message.module:
            msg = "message has no module"
            raise HandlerError(msg)
        _ = self.events.emit(message.module, message.data)
