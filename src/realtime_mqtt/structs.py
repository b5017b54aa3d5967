from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from realtime_mqtt.const import (
    REALTIME_ACCEPT_LANGUAGE,
    REALTIME_ANALYTICS_APP_ID,
    REALTIME_APP_NAME,
    REALTIME_APP_VERSION,
    REALTIME_CAPABILITIES,
    REALTIME_CONNECTION_TIMEOUT,
    REALTIME_DEBUG,
    REALTIME_KEEPALIVE,
    REALTIME_LOG_FORMAT,
    REALTIME_LOG_HUMAN_OUTPUT,
    REALTIME_LOG_JSON_FILE,
    REALTIME_MAX_RECONNECT_INTERVAL,
    REALTIME_METRICS_PORT,
    REALTIME_MIN_RECONNECT_INTERVAL,
    REALTIME_MQTT_HOST,
    REALTIME_MQTT_PORT,
    REALTIME_MQTT_TLS,
    REALTIME_PLATFORM,
    YES_ANSWER,
)

__all__ = [
    "AccountIdentity",
    "AppProfile",
    "CommandProtocol",
    "DecodedMessage",
    "DeviceIdentity",
    "FeatureFlags",
    "HandlerProtocol",
    "HandshakeCredentials",
    "InboundEnvelope",
    "OutboundCommand",
    "ParserProtocol",
    "QosLevel",
    "RealtimeEnv",
    "SubscriptionSet",
    "TransportEvent",
    "TransportEventType",
    "TransportListener",
    "TransportProtocol",
]


class QosLevel(IntEnum):
    FIRE_AND_FORGET = 0
    ACKNOWLEDGED_DELIVERY = 1
    EXACTLY_ONCE_DELIVERY = 2


class DeviceIdentity(BaseModel):
    """User agents presented by the emulated device."""

    model_config = ConfigDict(frozen=True)

    user_agent: str = Field(min_length=1)
    fb_user_agent: str = Field(min_length=1)


class AccountIdentity(BaseModel):
    """Credentials of the logged-in account.

    ``user_id`` is emitted as a raw JSON number in the handshake, so it must
    be purely numeric.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1, pattern=r"^\d+$")
    password: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    device_id: str = Field(min_length=1)
    device_secret: str = Field(min_length=1)


class AppProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    platform: str = REALTIME_PLATFORM
    app_name: str = REALTIME_APP_NAME
    app_version: str = REALTIME_APP_VERSION
    capabilities: str = REALTIME_CAPABILITIES
    accept_language: str = REALTIME_ACCEPT_LANGUAGE
    analytics_app_id: str = REALTIME_ANALYTICS_APP_ID


class FeatureFlags(BaseModel):
    """Experiment-derived switches, resolved once per client."""

    model_config = ConfigDict(frozen=True)

    iris_enabled: bool = False
    mqtt_live_enabled: bool = False
    graphql_enabled: bool = False
    msg_type_blacklist: str | None = None


class SubscriptionSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    pubsub: tuple[str, ...] = ()
    graphql: tuple[str, ...] = ()


class HandshakeCredentials(BaseModel):
    """Username/password/client id triple handed to the MQTT CONNECT packet."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: str
    client_id: str


@dataclass(frozen=True, slots=True)
class InboundEnvelope:
    """A raw broker message: wire topic id plus compressed payload."""

    topic: str
    payload: bytes


@dataclass(frozen=True, slots=True)
class DecodedMessage:
    module: str
    data: Any = None


@dataclass(slots=True)
class OutboundCommand:
    """Logical command addressed to a named topic."""

    topic: str
    payload: bytes | str | Mapping[str, Any] | Sequence[Any]
    qos_level: QosLevel = QosLevel.FIRE_AND_FORGET

    def serialized_payload(self) -> bytes:
        from realtime_mqtt.mqtt.publishing import serialize_payload

        return serialize_payload(self.payload)


class TransportEventType(StrEnum):
    OPENED = "opened"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"
    MESSAGE = "message"
    PING = "ping"
    PUBLISH = "publish"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class TransportEvent:
    """Single tagged event surfaced by the transport adapter."""

    type: TransportEventType
    topic: str | None = None
    payload: bytes | None = None
    error: BaseException | None = field(default=None, compare=False)


TransportListener = Callable[[TransportEvent], None]


class CommandProtocol(Protocol):
    """Anything that can be sent through ``RealtimeClient.send_command``."""

    @property
    def topic(self) -> str: ...

    @property
    def qos_level(self) -> int: ...

    def serialized_payload(self) -> bytes: ...


class ParserProtocol(Protocol):
    def parse(self, topic: str, payload: bytes) -> Sequence[DecodedMessage]: ...


class HandlerProtocol(Protocol):
    def handle(self, message: DecodedMessage) -> None: ...


class TransportProtocol(Protocol):
    """Protocol for the MQTT transport to break the client/adapter dependency."""

    def set_listener(self, listener: TransportListener | None) -> None: ...

    async def connect(
        self,
        host: str,
        port: int,
        credentials: HandshakeCredentials,
        timeout: float,
    ) -> None: ...

    def publish(self, topic: str, payload: bytes, qos: int) -> asyncio.Task[None]: ...

    async def disconnect(self) -> None: ...

    def is_connected(self) -> bool: ...


class RealtimeEnv(BaseModel):
    """Environment-driven settings for the runner.

    Module constants in ``const`` are evaluated at import; call ``reload()``
    after loading a ``.env`` file to pick up the new values.
    """

    mqtt_host: str = REALTIME_MQTT_HOST
    mqtt_port: int = REALTIME_MQTT_PORT
    mqtt_tls: bool = REALTIME_MQTT_TLS
    keepalive: int = REALTIME_KEEPALIVE
    connection_timeout: float = REALTIME_CONNECTION_TIMEOUT
    min_reconnect_interval: float = REALTIME_MIN_RECONNECT_INTERVAL
    max_reconnect_interval: float = REALTIME_MAX_RECONNECT_INTERVAL
    metrics_port: int = REALTIME_METRICS_PORT
    debug: bool = REALTIME_DEBUG
    log_format: str = REALTIME_LOG_FORMAT
    log_json_file: str | None = REALTIME_LOG_JSON_FILE
    log_human_output: str = REALTIME_LOG_HUMAN_OUTPUT
    platform: str = REALTIME_PLATFORM
    app_name: str = REALTIME_APP_NAME
    app_version: str = REALTIME_APP_VERSION
    capabilities: str = REALTIME_CAPABILITIES
    accept_language: str = REALTIME_ACCEPT_LANGUAGE
    analytics_app_id: str = REALTIME_ANALYTICS_APP_ID
    user_id: str | None = None
    password: str | None = None
    client_id: str | None = None
    device_id: str | None = None
    device_secret: str | None = None
    user_agent: str | None = None
    fb_user_agent: str | None = None

    def reload(self) -> RealtimeEnv:
        """Re-evaluate environment variables to update settings."""
        self.mqtt_host = os.environ.get("REALTIME_MQTT_HOST", REALTIME_MQTT_HOST)
        self.mqtt_port = int(os.environ.get("REALTIME_MQTT_PORT", str(REALTIME_MQTT_PORT)))
        self.mqtt_tls = os.environ.get("REALTIME_MQTT_TLS", str(REALTIME_MQTT_TLS)).casefold() in YES_ANSWER
        self.keepalive = int(os.environ.get("REALTIME_KEEPALIVE", str(REALTIME_KEEPALIVE)))
        self.connection_timeout = float(
            os.environ.get("REALTIME_CONNECTION_TIMEOUT", str(REALTIME_CONNECTION_TIMEOUT)),
        )
        self.min_reconnect_interval = float(
            os.environ.get("REALTIME_MIN_RECONNECT_INTERVAL", str(REALTIME_MIN_RECONNECT_INTERVAL)),
        )
        self.max_reconnect_interval = float(
            os.environ.get("REALTIME_MAX_RECONNECT_INTERVAL", str(REALTIME_MAX_RECONNECT_INTERVAL)),
        )
        self.metrics_port = int(os.environ.get("REALTIME_METRICS_PORT", str(REALTIME_METRICS_PORT)))
        self.debug = os.environ.get("REALTIME_DEBUG", str(REALTIME_DEBUG)).casefold() in YES_ANSWER
        self.log_format = os.environ.get("REALTIME_LOG_FORMAT", REALTIME_LOG_FORMAT)
        self.log_json_file = os.environ.get("REALTIME_LOG_JSON_FILE") or REALTIME_LOG_JSON_FILE
        self.log_human_output = os.environ.get("REALTIME_LOG_HUMAN_OUTPUT", REALTIME_LOG_HUMAN_OUTPUT)
        self.platform = os.environ.get("REALTIME_PLATFORM", REALTIME_PLATFORM)
        self.app_name = os.environ.get("REALTIME_APP_NAME", REALTIME_APP_NAME)
        self.app_version = os.environ.get("REALTIME_APP_VERSION", REALTIME_APP_VERSION)
        self.capabilities = os.environ.get("REALTIME_CAPABILITIES", REALTIME_CAPABILITIES)
        self.accept_language = os.environ.get("REALTIME_ACCEPT_LANGUAGE", REALTIME_ACCEPT_LANGUAGE)
        self.analytics_app_id = os.environ.get("REALTIME_ANALYTICS_APP_ID", REALTIME_ANALYTICS_APP_ID)
        self.user_id = os.environ.get("REALTIME_USER_ID")
        self.password = os.environ.get("REALTIME_PASSWORD")
        self.client_id = os.environ.get("REALTIME_CLIENT_ID")
        self.device_id = os.environ.get("REALTIME_DEVICE_ID")
        self.device_secret = os.environ.get("REALTIME_DEVICE_SECRET")
        self.user_agent = os.environ.get("REALTIME_USER_AGENT")
        self.fb_user_agent = os.environ.get("REALTIME_FB_USER_AGENT")
        return self

    def app_profile(self) -> AppProfile:
        return AppProfile(
            platform=self.platform,
            app_name=self.app_name,
            app_version=self.app_version,
            capabilities=self.capabilities,
            accept_language=self.accept_language,
            analytics_app_id=self.analytics_app_id,
        )

    def device_identity(self) -> DeviceIdentity:
        """Build the device identity; raises pydantic.ValidationError when unset."""
        return DeviceIdentity(user_agent=self.user_agent or "", fb_user_agent=self.fb_user_agent or "")

    def account_identity(self) -> AccountIdentity:
        """Build the account identity; raises pydantic.ValidationError when unset."""
        return AccountIdentity(
            user_id=self.user_id or "",
            password=self.password or "",
            client_id=self.client_id or "",
            device_id=self.device_id or "",
            device_secret=self.device_secret or "",
        )
