"""Outbound pipeline: serialize, deflate, map topic, publish."""

from __future__ import annotations

import asyncio
import json
import zlib
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Final

from realtime_mqtt.exceptions import NotConnectedError
from realtime_mqtt.logging_abstraction import get_logger
from realtime_mqtt.mqtt.topics import TopicRegistry, Topics
from realtime_mqtt.structs import CommandProtocol, QosLevel, SubscriptionSet, TransportProtocol

__all__ = ["COMPRESSION_LEVEL", "PublishPipeline", "serialize_payload"]

logger = get_logger(__name__)

COMPRESSION_LEVEL: Final = 9


def serialize_payload(payload: bytes | str | Mapping[str, Any] | Sequence[Any]) -> bytes:
    """Bytes pass through, text is UTF-8 encoded, anything else becomes compact JSON."""
    if isinstance(payload, bytes | bytearray):
        return bytes(payload)
    if isinstance(payload, str):
        return payload.encode()
    return json.dumps(payload, separators=(",", ":")).encode()


class PublishPipeline:
    def __init__(
        self,
        transport: TransportProtocol,
        topics: TopicRegistry,
        state: Callable[[], str] | None = None,
    ) -> None:
        self.lp = "PublishPipeline:"
        self.transport = transport
        self.topics = topics
        self._state = state

    def publish(
        self,
        topic: str,
        payload: bytes | str | Mapping[str, Any] | Sequence[Any],
        qos: int = QosLevel.FIRE_AND_FORGET,
    ) -> asyncio.Task[None]:
        """Compress and hand the payload to the transport.

        The returned task tracks the publish flow; callers are not required to
        await it.
        """
        lp = f"{self.lp}publish:"
        data = serialize_payload(payload)
        logger.debug("%s Sending message %r to topic '%s'", lp, data, topic)
        compressed = zlib.compress(data, COMPRESSION_LEVEL)
        wire_topic = self.topics.map_to_wire_id(topic)
        return self.transport.publish(wire_topic, compressed, int(qos))

    def send_command(self, command: CommandProtocol) -> asyncio.Task[None]:
        if not self.transport.is_connected():
            state = self._state() if self._state is not None else "unknown"
            raise NotConnectedError(state=state)
        return self.publish(command.topic, command.serialized_payload(), command.qos_level)

    def _send_topic_list(self, action: str, subscriptions: SubscriptionSet) -> list[asyncio.Task[None]]:
        lp = f"{self.lp}{action}:"
        tasks: list[asyncio.Task[None]] = []
        if subscriptions.pubsub:
            logger.info("%s %s pubsub topics %s", lp, action, ", ".join(subscriptions.pubsub))
            tasks.append(
                self.publish(Topics.PUBSUB, {action: list(subscriptions.pubsub)}, QosLevel.ACKNOWLEDGED_DELIVERY),
            )
        if subscriptions.graphql:
            logger.info("%s %s graphql topics %s", lp, action, ", ".join(subscriptions.graphql))
            tasks.append(
                self.publish(
                    Topics.REALTIME_SUB,
                    {action: list(subscriptions.graphql)},
                    QosLevel.ACKNOWLEDGED_DELIVERY,
                ),
            )
        return tasks

    def subscribe(self, subscriptions: SubscriptionSet) -> list[asyncio.Task[None]]:
        return self._send_topic_list("sub", subscriptions)

    def unsubscribe(self, subscriptions: SubscriptionSet) -> list[asyncio.Task[None]]:
        return self._send_topic_list("unsub", subscriptions)
