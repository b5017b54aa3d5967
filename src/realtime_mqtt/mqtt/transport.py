"""aiomqtt-backed transport adapter.

Every broker interaction is surfaced to a single listener as a tagged
``TransportEvent``. A fresh ``aiomqtt.Client`` is built for every connect, so
the adapter can reconnect after a lost or closed session.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import time
from collections.abc import Callable
from typing import Any, Final, override

import aiomqtt

from realtime_mqtt.const import REALTIME_KEEPALIVE
from realtime_mqtt.exceptions import TransportError
from realtime_mqtt.instrumentation import timed
from realtime_mqtt.logging_abstraction import get_logger
from realtime_mqtt.metrics import record_connect_attempt, record_connect_latency, record_publish
from realtime_mqtt.structs import (
    HandshakeCredentials,
    TransportEvent,
    TransportEventType,
    TransportListener,
)

__all__ = ["MqttTransport", "ping_interval"]

logger = get_logger(__name__)

ClientFactory = Callable[..., aiomqtt.Client]

# paho logs this exact line when a ping flow completes
PINGRESP_LOG_MESSAGE: Final = "Received PINGRESP"


def _payload_bytes(payload: Any) -> bytes:
    if payload is None:
        return b""
    if isinstance(payload, bytes | bytearray):
        return bytes(payload)
    return str(payload).encode()


def ping_interval(watchdog_interval: float) -> int:
    """MQTT keepalive to request so that ping flows complete well inside the watchdog window."""
    return max(1, int(watchdog_interval // 2))


class _PingObserver(logging.Handler):
    """Receives the MQTT engine's log records and turns PINGRESP into a callback."""

    def __init__(self, loop: asyncio.AbstractEventLoop, on_ping: Callable[[], None]) -> None:
        super().__init__(logging.DEBUG)
        self.loop = loop
        self.on_ping = on_ping

    @override
    def emit(self, record: logging.LogRecord) -> None:
        message = record.getMessage()
        if message == PINGRESP_LOG_MESSAGE:
            _ = self.loop.call_soon_threadsafe(self.on_ping)
            return
        logger.debug("paho: %s", message)


class MqttTransport:
    """Thin façade over ``aiomqtt.Client``.

    ``connect`` raises ``TransportError`` on failure; every other problem is
    reported through WARNING/ERROR events. The adapter never reconnects on its
    own; that decision belongs to the lifecycle manager.
    """

    lp: str = "MqttTransport:"

    def __init__(
        self,
        tls_context: ssl.SSLContext | None = None,
        keepalive: int = REALTIME_KEEPALIVE,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.tls_context = tls_context
        self.keepalive = keepalive
        self._client_factory: ClientFactory = client_factory or aiomqtt.Client
        self.client: aiomqtt.Client | None = None
        self._listener: TransportListener | None = None
        self._receiver_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    def set_listener(self, listener: TransportListener | None) -> None:
        self._listener = listener

    def is_connected(self) -> bool:
        return self.client is not None

    def _emit(self, event: TransportEvent) -> None:
        if self._listener is None:
            return
        try:
            self._listener(event)
        except Exception as e:
            logger.exception("%s listener failed on '%s' event: %s", self.lp, event.type, e)

    def _engine_logger(self) -> logging.Logger:
        # Detached from the logging tree; records reach only the observer
        engine_logger = logging.Logger(f"{__name__}.engine", logging.DEBUG)
        engine_logger.addHandler(_PingObserver(asyncio.get_running_loop(), self._on_pingresp))
        return engine_logger

    def _on_pingresp(self) -> None:
        if self.client is None:
            return
        self._emit(TransportEvent(TransportEventType.PING))

    @timed("mqtt_connect")
    async def connect(
        self,
        host: str,
        port: int,
        credentials: HandshakeCredentials,
        timeout: float,
    ) -> None:
        lp = f"{self.lp}connect:"
        if self.client is not None:
            logger.warning("%s already connected, ignoring connect request", lp)
            return
        client = self._client_factory(
            hostname=host,
            port=port,
            username=credentials.username,
            password=credentials.password,
            identifier=credentials.client_id,
            protocol=aiomqtt.ProtocolVersion.V31,
            timeout=timeout,
            keepalive=self.keepalive,
            tls_context=self.tls_context,
            logger=self._engine_logger(),
        )
        started = time.perf_counter()
        try:
            _ = await client.__aenter__()
        except (aiomqtt.MqttError, OSError) as e:
            record_connect_attempt("failure")
            logger.warning("%s connection to %s:%s failed: %s", lp, host, port, e)
            raise TransportError(f"connection to {host}:{port} failed: {e}") from e

        record_connect_attempt("success")
        record_connect_latency(time.perf_counter() - started)
        self.client = client
        logger.info("%s Connection has been established with %s:%s", lp, host, port)
        self._emit(TransportEvent(TransportEventType.OPENED))
        self._receiver_task = asyncio.create_task(
            self._receive_loop(client),
            name="realtime_mqtt_receiver",
        )
        self._emit(TransportEvent(TransportEventType.CONNECTED))

    async def _receive_loop(self, client: aiomqtt.Client) -> None:
        rcv_lp = f"{self.lp}rcv:"
        try:
            async for message in client.messages:
                self._emit(
                    TransportEvent(
                        TransportEventType.MESSAGE,
                        topic=message.topic.value,
                        payload=_payload_bytes(message.payload),
                    ),
                )
        except asyncio.CancelledError:
            logger.debug("%s receiver task cancelled, propagating...", rcv_lp)
            raise
        except aiomqtt.MqttError as msg_err:
            logger.warning("%s MQTT error: %s", rcv_lp, msg_err)
            await self._connection_lost(client, TransportEvent(TransportEventType.WARNING, error=msg_err))
        except Exception as e:
            logger.exception("%s unexpected receiver failure", rcv_lp)
            await self._connection_lost(client, TransportEvent(TransportEventType.ERROR, error=e))
        else:
            await self._connection_lost(client, None)

    async def _connection_lost(self, client: aiomqtt.Client, reason: TransportEvent | None) -> None:
        if self.client is not client:
            return
        self.client = None
        self._receiver_task = None
        try:
            await client.__aexit__(None, None, None)
        except aiomqtt.MqttError as e:
            logger.debug("%s cleanup after connection loss failed: %s", self.lp, e)
        if reason is not None:
            self._emit(reason)
        self._emit(TransportEvent(TransportEventType.CLOSED))

    def publish(self, topic: str, payload: bytes, qos: int) -> asyncio.Task[None]:
        """Schedule a publish; the returned task completes with the publish flow."""
        task = asyncio.create_task(self._publish(topic, payload, qos), name=f"realtime_mqtt_publish:{topic}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _publish(self, topic: str, payload: bytes, qos: int) -> None:
        lp = f"{self.lp}publish:"
        client = self.client
        if client is None:
            logger.warning("%s not connected, dropping publish to '%s'", lp, topic)
            record_publish(topic, "offline")
            self._emit(
                TransportEvent(
                    TransportEventType.WARNING,
                    topic=topic,
                    error=TransportError(f"publish to '{topic}' while disconnected"),
                ),
            )
            return
        try:
            await client.publish(topic, payload, qos=qos)
        except aiomqtt.MqttCodeError as mqtt_code_exc:
            logger.warning("%s [MqttCodeError] -> %s", lp, mqtt_code_exc)
            record_publish(topic, "failure")
            self._emit(TransportEvent(TransportEventType.WARNING, topic=topic, error=mqtt_code_exc))
        except aiomqtt.MqttError as mqtt_err:
            logger.warning("%s [MqttError] -> %s", lp, mqtt_err)
            record_publish(topic, "failure")
            self._emit(TransportEvent(TransportEventType.WARNING, topic=topic, error=mqtt_err))
        else:
            record_publish(topic, "success")
            logger.debug("%s Publish flow completed for '%s'", lp, topic)
            self._emit(TransportEvent(TransportEventType.PUBLISH, topic=topic))

    async def disconnect(self) -> None:
        lp = f"{self.lp}disconnect:"
        client, self.client = self.client, None
        receiver, self._receiver_task = self._receiver_task, None
        if client is None:
            logger.debug("%s not connected, nothing to do", lp)
            return
        if receiver is not None and not receiver.done():
            _ = receiver.cancel()
            _ = await asyncio.gather(receiver, return_exceptions=True)
        try:
            logger.debug("%s Disconnecting from broker...", lp)
            await client.__aexit__(None, None, None)
        except aiomqtt.MqttError as ce:
            logger.warning("%s MQTT disconnect failed: %s", lp, ce)
        else:
            logger.info("%s Disconnected from broker", lp)
        self._emit(TransportEvent(TransportEventType.DISCONNECTED))
        self._emit(TransportEvent(TransportEventType.CLOSED))
