"""Connection lifecycle: connect attempts, reconnect backoff, keepalive watchdog.

All state lives on one event loop and is only mutated from transport events,
timer callbacks and the tasks spawned here, so no locking is needed.

Two single-slot timers drive the machine:

- the reconnect timer schedules the next connect attempt (delay = current
  backoff interval, 0 on a fresh start or after a healthy session closed),
- the keepalive timer forcibly disconnects the transport when no traffic was
  observed for ``keepalive_interval`` seconds. Half-open TCP sessions are
  detected this way and healed by the reconnect that follows.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from enum import Enum
from typing import Any

from realtime_mqtt.const import (
    REALTIME_CONNECTION_TIMEOUT,
    REALTIME_KEEPALIVE,
    REALTIME_MQTT_HOST,
    REALTIME_MQTT_PORT,
)
from realtime_mqtt.correlation import correlation_context
from realtime_mqtt.exceptions import TransportError
from realtime_mqtt.logging_abstraction import get_logger
from realtime_mqtt.metrics import (
    record_connection_state,
    record_keepalive_expired,
    record_reconnect_scheduled,
)
from realtime_mqtt.mqtt.session import SessionNegotiator
from realtime_mqtt.mqtt.timers import BackoffPolicy, RearmableTimer
from realtime_mqtt.structs import (
    InboundEnvelope,
    TransportEvent,
    TransportEventType,
    TransportProtocol,
)

__all__ = ["ConnectionLifecycleManager", "ConnectionState"]

logger = get_logger(__name__)


class ConnectionState(Enum):
    """Connection state enumeration."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    SHUT_DOWN = "shut_down"


# Events that prove the connection is alive
_TRAFFIC_EVENTS = frozenset(
    {
        TransportEventType.CONNECTED,
        TransportEventType.MESSAGE,
        TransportEventType.PING,
        TransportEventType.PUBLISH,
    },
)


class ConnectionLifecycleManager:
    def __init__(
        self,
        transport: TransportProtocol,
        negotiator: SessionNegotiator,
        on_connected: Callable[[], None] | None = None,
        on_message: Callable[[InboundEnvelope], None] | None = None,
        host: str = REALTIME_MQTT_HOST,
        port: int = REALTIME_MQTT_PORT,
        keepalive_interval: float = REALTIME_KEEPALIVE,
        connection_timeout: float = REALTIME_CONNECTION_TIMEOUT,
        backoff: BackoffPolicy | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.lp = "Lifecycle:"
        self.transport = transport
        self.negotiator = negotiator
        self.on_connected = on_connected
        self.on_message = on_message
        self.host = host
        self.port = port
        self.keepalive_interval = keepalive_interval
        self.connection_timeout = connection_timeout
        self.backoff = backoff or BackoffPolicy()
        self.keepalive_timer = RearmableTimer("Keepalive", loop)
        self.reconnect_timer = RearmableTimer("Reconnect", loop)
        self.state = ConnectionState.IDLE
        # Not started yet counts as shut down
        self._shutdown = True
        self._connect_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self.transport.set_listener(self.handle_event)

    @property
    def is_active(self) -> bool:
        return not self._shutdown

    @property
    def connect_in_flight(self) -> bool:
        return self._connect_task is not None and not self._connect_task.done()

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        logger.debug("%s state %s -> %s", self.lp, self.state.value, state.value)
        self.state = state
        record_connection_state(state.value)

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s background task '%s' failed: %s", self.lp, task.get_name(), exc)

    # -- public API --------------------------------------------------------

    def start(self) -> None:
        """Perform the first connection in a row."""
        lp = f"{self.lp}start:"
        if self.is_active:
            logger.warning("%s already active, ignoring start request", lp)
            return
        logger.info("%s Starting realtime connection to %s:%d", lp, self.host, self.port)
        self._shutdown = False
        self.backoff.reset()
        self._set_state(ConnectionState.CONNECTING)
        self._connect()

    async def stop(self) -> None:
        """Shut down; idempotent. Suppresses any further reconnect."""
        lp = f"{self.lp}stop:"
        logger.info("%s Shutting down...", lp)
        self._shutdown = True
        _ = self.reconnect_timer.cancel()
        _ = self.keepalive_timer.cancel()
        if self.state not in (ConnectionState.IDLE, ConnectionState.SHUT_DOWN):
            self._set_state(ConnectionState.DISCONNECTING)
        try:
            await self.transport.disconnect()
        except TransportError as e:
            logger.warning("%s disconnect failed: %s", lp, e)
        self._set_state(ConnectionState.SHUT_DOWN)

    # -- connect attempts --------------------------------------------------

    def _connect(self) -> None:
        lp = f"{self.lp}connect:"
        if self.connect_in_flight:
            logger.debug("%s connect attempt already in flight, not scheduling another", lp)
            return
        delay = self.backoff.delay()
        if delay:
            logger.info("%s Reconnecting in %.1f seconds", lp, delay)
        self.reconnect_timer.rearm(delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        if self._shutdown or self.connect_in_flight:
            return
        self._connect_task = self._spawn(self._attempt_connect(), name="realtime_mqtt_connect")

    async def _attempt_connect(self) -> None:
        lp = f"{self.lp}connect:"
        with correlation_context():
            try:
                credentials = self.negotiator.build_credentials()
                logger.info("%s Connecting to %s:%d...", lp, self.host, self.port)
                await self.transport.connect(self.host, self.port, credentials, self.connection_timeout)
            except TransportError as e:
                self._connect_failed(e.reason)
                return
            except Exception as e:
                logger.exception("%s unexpected connect failure", lp)
                self._connect_failed(str(e) or type(e).__name__)
                return

            self._connect_task = None
            self.backoff.reset()
            if self._shutdown:
                logger.info("%s stopped while connecting, disconnecting", lp)
                await self.transport.disconnect()

    def _connect_failed(self, reason: str) -> None:
        lp = f"{self.lp}connect:"
        self._connect_task = None
        if self._shutdown:
            logger.debug("%s connect failed after shutdown: %s", lp, reason)
            return
        interval = self.backoff.grow()
        logger.warning(
            "%s Connection failed (%s), next attempt in %.1f seconds",
            lp,
            reason,
            interval,
            extra={"backoff_seconds": interval},
        )
        record_reconnect_scheduled("connect_failed")
        self._set_state(ConnectionState.CONNECTING)
        self._connect()

    # -- keepalive ---------------------------------------------------------

    def _set_keepalive_timer(self) -> None:
        if self._shutdown:
            return
        self.keepalive_timer.rearm(self.keepalive_interval, self._on_keepalive_expired)

    def _on_keepalive_expired(self) -> None:
        logger.info("%s Keepalive timer has been fired.", self.lp)
        record_keepalive_expired()
        self._set_state(ConnectionState.DISCONNECTING)
        _ = self._spawn(self.transport.disconnect(), name="realtime_mqtt_keepalive_disconnect")

    # -- transport events --------------------------------------------------

    def handle_event(self, event: TransportEvent) -> None:
        """Single entry point for every transport event."""
        if event.type in _TRAFFIC_EVENTS:
            self._set_keepalive_timer()

        if event.type is TransportEventType.MESSAGE:
            if self.on_message is not None:
                self.on_message(InboundEnvelope(topic=event.topic or "", payload=event.payload or b""))
        elif event.type is TransportEventType.CONNECTED:
            self._on_connected()
        elif event.type is TransportEventType.CLOSED:
            self._on_closed()
        elif event.type is TransportEventType.PING:
            logger.debug("%s Ping flow completed", self.lp)
        elif event.type is TransportEventType.PUBLISH:
            logger.debug("%s Publish flow completed", self.lp)
        elif event.type is TransportEventType.OPENED:
            logger.info("%s Connection has been established", self.lp)
        elif event.type is TransportEventType.DISCONNECTED:
            logger.info("%s Disconnected from broker", self.lp)
        elif event.type is TransportEventType.WARNING:
            logger.warning("%s %s", self.lp, event.error)
        elif event.type is TransportEventType.ERROR:
            logger.error("%s %s", self.lp, event.error)

    def _on_connected(self) -> None:
        logger.info("%s Connected to a broker", self.lp)
        _ = self.reconnect_timer.cancel()
        if self._shutdown:
            return
        self.backoff.reset()
        self._set_state(ConnectionState.CONNECTED)
        if self.on_connected is not None:
            self.on_connected()

    def _on_closed(self) -> None:
        logger.info("%s Connection has been closed", self.lp)
        _ = self.keepalive_timer.cancel()
        if self._shutdown:
            self._set_state(ConnectionState.SHUT_DOWN)
            return
        self._set_state(ConnectionState.CONNECTING)
        # A non-zero interval means a failed attempt already re-armed the timer
        if not self.backoff.interval:
            record_reconnect_scheduled("closed")
            self._connect()
