"""
Shared fixtures for unit tests.

Provides identities, feature flags and a scripted in-memory transport that
drives the lifecycle manager without a broker.
"""

from __future__ import annotations

import asyncio
import zlib
from typing import Any
from unittest.mock import MagicMock

import pytest

from realtime_mqtt.exceptions import TransportError
from realtime_mqtt.structs import (
    AccountIdentity,
    DeviceIdentity,
    FeatureFlags,
    HandshakeCredentials,
    TransportEvent,
    TransportEventType,
    TransportListener,
)

USER_ID = "123456789"


class FakeTransport:
    """In-memory TransportProtocol implementation.

    ``connect`` succeeds immediately unless ``fail_connect`` is set, or waits
    for ``connect_gate`` when one is provided.
    """

    def __init__(self) -> None:
        self.listener: TransportListener | None = None
        self.connected = False
        self.fail_connect = False
        self.connect_gate: asyncio.Event | None = None
        self.connect_calls: list[tuple[str, int, HandshakeCredentials, float]] = []
        self.published: list[tuple[str, bytes, int]] = []
        self.disconnect_calls = 0

    def set_listener(self, listener: TransportListener | None) -> None:
        self.listener = listener

    def emit(self, event_type: TransportEventType, **kwargs: Any) -> None:
        assert self.listener is not None, "listener must be set"
        self.listener(TransportEvent(event_type, **kwargs))

    async def connect(self, host: str, port: int, credentials: HandshakeCredentials, timeout: float) -> None:
        self.connect_calls.append((host, port, credentials, timeout))
        if self.connect_gate is not None:
            _ = await self.connect_gate.wait()
        if self.fail_connect:
            msg = f"connection to {host}:{port} refused"
            raise TransportError(msg)
        self.connected = True
        self.emit(TransportEventType.OPENED)
        self.emit(TransportEventType.CONNECTED)

    def publish(self, topic: str, payload: bytes, qos: int) -> asyncio.Task[None]:
        self.published.append((topic, payload, qos))

        async def _complete() -> None:
            return None

        return asyncio.create_task(_complete())

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if not self.connected:
            return
        self.connected = False
        self.emit(TransportEventType.DISCONNECTED)
        self.emit(TransportEventType.CLOSED)

    def drop(self) -> None:
        """Simulate the broker closing the connection."""
        self.connected = False
        self.emit(TransportEventType.CLOSED)

    def is_connected(self) -> bool:
        return self.connected

    def published_payloads(self) -> list[tuple[str, bytes, int]]:
        """Published messages with their payloads inflated."""
        return [(topic, zlib.decompress(payload), qos) for topic, payload, qos in self.published]


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def device_identity() -> DeviceIdentity:
    return DeviceIdentity(
        user_agent="Instagram 107.0.0.27.121 Android (24/7.0; 380dpi; 1080x1920; OnePlus; ONEPLUS A3010; OnePlus3T; qcom; en_US)",
        fb_user_agent="[FBAN/MQTT;FBAV/107.0.0.27.121;FBBV/168361634;FBDM/{density=3.0,width=1080,height=1920};FBLC/en_US;FBCR/;FBMF/OnePlus;FBBD/OnePlus;FBPN/com.instagram.android;FBDV/ONEPLUS A3010;FBSV/7.0;FBLR/0;FBBK/1;FBCA/armeabi-v7a:armeabi;]",
    )


@pytest.fixture
def account_identity() -> AccountIdentity:
    return AccountIdentity(
        user_id=USER_ID,
        password="sessionid=abc123",
        client_id="clientid0123456789",
        device_id="00000000-1111-2222-3333-444444444444",
        device_secret="secret",
    )


@pytest.fixture
def all_flags() -> FeatureFlags:
    return FeatureFlags(iris_enabled=True, mqtt_live_enabled=True, graphql_enabled=True)


@pytest.fixture
def no_flags() -> FeatureFlags:
    return FeatureFlags()


@pytest.fixture
def mock_negotiator() -> MagicMock:
    """Negotiator stub returning fixed credentials."""
    negotiator = MagicMock()
    negotiator.build_credentials.return_value = HandshakeCredentials(
        username='{"u":123456789}',
        password="sessionid=abc123",
        client_id="clientid0123456789",
    )
    return negotiator
