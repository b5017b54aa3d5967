"""Realtime client façade wiring topics, handshake, lifecycle and pipelines."""

from __future__ import annotations

import asyncio
import ssl
from collections.abc import Mapping
from typing import Any

from realtime_mqtt.events import RealtimeEvents
from realtime_mqtt.logging_abstraction import get_logger
from realtime_mqtt.mqtt.dispatch import InboundDispatcher
from realtime_mqtt.mqtt.lifecycle import ConnectionLifecycleManager, ConnectionState
from realtime_mqtt.mqtt.publishing import PublishPipeline
from realtime_mqtt.mqtt.session import SessionNegotiator
from realtime_mqtt.mqtt.subscriptions import load_feature_flags, plan_subscriptions
from realtime_mqtt.mqtt.timers import BackoffPolicy
from realtime_mqtt.mqtt.topics import TopicRegistry
from realtime_mqtt.mqtt.transport import MqttTransport, ping_interval
from realtime_mqtt.structs import (
    AccountIdentity,
    AppProfile,
    CommandProtocol,
    DeviceIdentity,
    FeatureFlags,
    HandlerProtocol,
    ParserProtocol,
    RealtimeEnv,
    SubscriptionSet,
    TransportProtocol,
)

__all__ = ["RealtimeClient"]

logger = get_logger(__name__)


class RealtimeClient:
    """Persistent realtime session for one account.

    Feature flags and subscription topics are resolved once here; build a new
    client to pick up changed experiments.
    """

    def __init__(
        self,
        device: DeviceIdentity,
        account: AccountIdentity,
        experiments: Mapping[str, Any] | FeatureFlags | None = None,
        parsers: Mapping[str, ParserProtocol] | None = None,
        handlers: Mapping[str, HandlerProtocol] | None = None,
        transport: TransportProtocol | None = None,
        env: RealtimeEnv | None = None,
        events: RealtimeEvents | None = None,
        profile: AppProfile | None = None,
        topics: TopicRegistry | None = None,
        negotiator: SessionNegotiator | None = None,
    ) -> None:
        self.lp = "RealtimeClient:"
        self.env = env or RealtimeEnv()
        self.events = events or RealtimeEvents()
        self.topics = topics or TopicRegistry()
        if isinstance(experiments, FeatureFlags):
            self.flags = experiments
        else:
            self.flags = load_feature_flags(experiments)
        self.subscriptions: SubscriptionSet = plan_subscriptions(account.user_id, self.flags)
        self.negotiator = negotiator or SessionNegotiator(
            device,
            account,
            self.flags,
            profile=profile,
            topics=self.topics,
        )
        if transport is None:
            tls_context = ssl.create_default_context() if self.env.mqtt_tls else None
            transport = MqttTransport(tls_context=tls_context, keepalive=ping_interval(self.env.keepalive))
        self.transport = transport
        self.publisher = PublishPipeline(self.transport, self.topics, state=lambda: self.state.value)
        self.dispatcher = InboundDispatcher(self.topics, parsers or {}, handlers or {}, self.events)
        self.lifecycle = ConnectionLifecycleManager(
            self.transport,
            self.negotiator,
            on_connected=self._subscribe_all,
            on_message=self.dispatcher.dispatch,
            host=self.env.mqtt_host,
            port=self.env.mqtt_port,
            keepalive_interval=self.env.keepalive,
            connection_timeout=self.env.connection_timeout,
            backoff=BackoffPolicy(self.env.min_reconnect_interval, self.env.max_reconnect_interval),
        )

    @property
    def state(self) -> ConnectionState:
        return self.lifecycle.state

    def is_active(self) -> bool:
        return self.lifecycle.is_active

    def is_connected(self) -> bool:
        return self.transport.is_connected()

    def start(self) -> None:
        self.lifecycle.start()

    async def stop(self) -> None:
        await self.lifecycle.stop()

    def send_command(self, command: CommandProtocol) -> asyncio.Task[None]:
        """Publish a command; raises NotConnectedError while offline."""
        return self.publisher.send_command(command)

    def subscribe(self, subscriptions: SubscriptionSet | None = None) -> list[asyncio.Task[None]]:
        return self.publisher.subscribe(subscriptions or self.subscriptions)

    def unsubscribe(self, subscriptions: SubscriptionSet | None = None) -> list[asyncio.Task[None]]:
        return self.publisher.unsubscribe(subscriptions or self.subscriptions)

    def _subscribe_all(self) -> None:
        _ = self.subscribe()
