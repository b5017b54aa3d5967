"""Inbound pipeline: inflate, unmap topic, parse, route to handlers.

Failures are isolated at two levels. An envelope that cannot be inflated,
has no parser, or fails to parse is dropped. A message whose handler fails
never stops its siblings: ``HandlerError`` is logged and anything else is
escalated once through the client's ``warning`` event.
"""

from __future__ import annotations

import base64
import zlib
from collections.abc import Mapping, Sequence
from types import MappingProxyType

from realtime_mqtt.correlation import correlation_context
from realtime_mqtt.events import WARNING_EVENT, RealtimeEvents
from realtime_mqtt.exceptions import HandlerError
from realtime_mqtt.logging_abstraction import get_logger
from realtime_mqtt.metrics import record_envelope_dropped, record_envelope_received, record_message_handled
from realtime_mqtt.mqtt.topics import TopicRegistry
from realtime_mqtt.structs import DecodedMessage, HandlerProtocol, InboundEnvelope, ParserProtocol

__all__ = ["InboundDispatcher", "inflate"]

logger = get_logger(__name__)


def inflate(payload: bytes) -> bytes:
    """Decompress a zlib, gzip or raw deflate payload.

    Raises zlib.error when the payload is none of those.
    """
    try:
        # +32 lets zlib detect the zlib or gzip header itself
        return zlib.decompress(payload, zlib.MAX_WBITS | 32)
    except zlib.error:
        return zlib.decompress(payload, -zlib.MAX_WBITS)


def _preview(payload: bytes, limit: int = 256) -> str:
    return base64.b64encode(payload[:limit]).decode()


class InboundDispatcher:
    def __init__(
        self,
        topics: TopicRegistry,
        parsers: Mapping[str, ParserProtocol],
        handlers: Mapping[str, HandlerProtocol],
        events: RealtimeEvents,
    ) -> None:
        self.lp = "Dispatcher:"
        self.topics = topics
        self.parsers: Mapping[str, ParserProtocol] = MappingProxyType(dict(parsers))
        self.handlers: Mapping[str, HandlerProtocol] = MappingProxyType(dict(handlers))
        self.events = events

    def dispatch(self, envelope: InboundEnvelope) -> None:
        """Process one envelope; never raises."""
        with correlation_context():
            lp = f"{self.lp}dispatch:"
            try:
                payload = inflate(envelope.payload)
            except zlib.error as e:
                logger.warning(
                    "%s Failed to inflate the payload",
                    lp,
                    extra={"wire_topic": envelope.topic, "error": str(e)},
                )
                record_envelope_dropped("inflate")
                return

            topic = self.topics.map_from_wire_id(envelope.topic)
            record_envelope_received(topic)
            self.handle_message(topic, payload)

    def handle_message(self, topic: str, payload: bytes) -> None:
        lp = f"{self.lp}handle:"
        logger.debug("%s Received a message from topic '%s'", lp, topic, extra={"payload": _preview(payload)})
        parser = self.parsers.get(topic)
        if parser is None:
            logger.warning(
                "%s No parser for topic '%s' found, skipping the message(s)",
                lp,
                topic,
                extra={"payload": _preview(payload)},
            )
            record_envelope_dropped("no_parser")
            return

        try:
            messages: Sequence[DecodedMessage] = list(parser.parse(topic, payload))
        except Exception as e:
            logger.warning("%s %s", lp, e, extra={"topic": topic, "payload": _preview(payload)})
            record_envelope_dropped("parse")
            return

        for message in messages:
            self._handle_decoded(message)

    def _handle_decoded(self, message: DecodedMessage) -> None:
        lp = f"{self.lp}handle:"
        module = message.module
        handler = self.handlers.get(module)
        if handler is None:
            logger.warning(
                "%s No handler for module '%s' found, skipping the message",
                lp,
                module,
                extra={"data": message.data},
            )
            record_message_handled(module, "no_handler")
            return

        logger.info("%s Processing a message for module '%s'", lp, module)
        try:
            handler.handle(message)
        except HandlerError as e:
            logger.warning("%s %s", lp, e, extra={"module": module, "data": message.data})
            record_message_handled(module, "handler_error")
        except Exception as e:
            logger.warning("%s unexpected handler failure for module '%s': %s", lp, module, e)
            record_message_handled(module, "unexpected_error")
            _ = self.events.emit(WARNING_EVENT, e)
        else:
            record_message_handled(module, "success")
