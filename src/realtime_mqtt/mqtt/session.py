"""Handshake payload negotiation.

The broker authenticates the session from the MQTT CONNECT username, which
carries a compact JSON document describing the device, the account, the
subscribe topics and the application profile.
"""

from __future__ import annotations

import json
import random
from collections.abc import Callable
from datetime import UTC, datetime, time, timedelta
from enum import IntFlag
from typing import Any, Final

from realtime_mqtt.const import LOCAL_TZ
from realtime_mqtt.logging_abstraction import get_logger
from realtime_mqtt.mqtt.topics import TopicRegistry, Topics
from realtime_mqtt.structs import (
    AccountIdentity,
    AppProfile,
    DeviceIdentity,
    FeatureFlags,
    HandshakeCredentials,
)

__all__ = ["Capabilities", "SessionNegotiator"]

logger = get_logger(__name__)

NETWORK_TYPE_WIFI: Final = 1
NETWORK_SUBTYPE: Final = 0
PUBLISH_FORMAT: Final = "jz"
CLIENT_TYPE: Final = "cookie_auth"
CLIENT_STACK: Final = 3
MQTT_ROUTE: Final = "django"
TYPING_BLACKLIST_ENTRY: Final = "typing_type"


class Capabilities(IntFlag):
    """Client capability bits advertised in the handshake ``cp`` field."""

    ACKNOWLEDGED_DELIVERY = 1 << 0
    PROCESSING_LASTACTIVE_PRESENCEINFO = 1 << 1
    EXACT_KEEPALIVE = 1 << 2
    REQUIRES_JSON_UNICODE_ESCAPES = 1 << 3
    DELTA_SENT_MESSAGE_ENABLED = 1 << 4
    USE_ENUM_TOPIC = 1 << 5
    SUPPRESS_GETDIFF_IN_CONNECT = 1 << 6
    USE_THRIFT_FOR_INBOX = 1 << 7
    USE_SEND_PINGRESP = 1 << 8
    REQUIRE_REPLAY_PROTECTION = 1 << 9
    DATA_SAVING_MODE = 1 << 10
    TYPING_OFF_WHEN_SENDING_MESSAGE = 1 << 11

    @classmethod
    def default_set(cls) -> Capabilities:
        return (
            cls.ACKNOWLEDGED_DELIVERY
            | cls.PROCESSING_LASTACTIVE_PRESENCEINFO
            | cls.EXACT_KEEPALIVE
            | cls.DELTA_SENT_MESSAGE_ENABLED
            | cls.USE_ENUM_TOPIC
            | cls.USE_THRIFT_FOR_INBOX
            | cls.USE_SEND_PINGRESP
        )


class SessionNegotiator:
    """Builds the handshake username and the CONNECT credentials.

    ``clock`` returns the current time and ``rng`` provides the placeholder
    buster numbers; both are injectable for deterministic tests.
    """

    def __init__(
        self,
        device: DeviceIdentity,
        account: AccountIdentity,
        flags: FeatureFlags,
        profile: AppProfile | None = None,
        topics: TopicRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.lp = "SessionNegotiator:"
        self.device = device
        self.account = account
        self.flags = flags
        self.profile = profile or AppProfile()
        self.topics = topics or TopicRegistry()
        self._clock = clock or (lambda: datetime.now(LOCAL_TZ))
        self._rng = rng or random.Random()

    @staticmethod
    def session_id(now: datetime) -> int:
        """Milliseconds elapsed since local midnight of last Monday.

        "Last Monday" is strictly before today, so on a Monday it is a week ago.
        """
        if now.tzinfo is None:
            now = now.replace(tzinfo=LOCAL_TZ)
        days_back = now.weekday() or 7
        monday = now.date() - timedelta(days=days_back)
        start = datetime.combine(monday, time.min, tzinfo=now.tzinfo)
        # Compare in UTC so a DST change during the week is accounted for
        elapsed = now.astimezone(UTC) - start.astimezone(UTC)
        return round(elapsed.total_seconds() * 1000)

    def subscribe_topics(self) -> list[str]:
        topics = [Topics.PUBSUB]
        if self.flags.graphql_enabled:
            topics.append(Topics.REALTIME_SUB)
        topics.append(Topics.SEND_MESSAGE_RESPONSE)
        if self.flags.iris_enabled:
            topics.append(Topics.IRIS_SUB_RESPONSE)
            topics.append(Topics.MESSAGE_SYNC)
        return topics

    def msg_type_blacklist(self) -> str:
        blacklist = self.flags.msg_type_blacklist or ""
        if self.flags.graphql_enabled:
            blacklist = f"{blacklist}, {TYPING_BLACKLIST_ENTRY}" if blacklist else TYPING_BLACKLIST_ENTRY
        return blacklist

    def app_specific_info(self) -> dict[str, str]:
        info = {
            "platform": self.profile.platform,
            "app_version": self.profile.app_version,
            "capabilities": self.profile.capabilities,
            "User-Agent": self.device.user_agent,
            "ig_mqtt_route": MQTT_ROUTE,
        }
        blacklist = self.msg_type_blacklist()
        if blacklist:
            info["pubsub_msg_type_blacklist"] = blacklist
        # The server parser expects Accept-Language last
        info["Accept-Language"] = self.profile.accept_language
        return info

    def _wire_topic_ids(self) -> list[int | str]:
        ids: list[int | str] = []
        for name in self.subscribe_topics():
            wire_id = self.topics.map_to_wire_id(name)
            ids.append(int(wire_id) if wire_id.isdigit() else wire_id)
        return ids

    def build_username(self) -> str:
        """Encode the handshake document.

        ``u`` and ``mqtt_sid`` must be bare JSON numbers wider than a float can
        hold exactly, so they are encoded as unique placeholder strings and
        substituted textually after serialization.
        """
        session_id = self.session_id(self._clock())
        rand_num = self._rng.randint(1000000, 9999999)
        account_placeholder = f"%ACCOUNT_ID_{rand_num}%"
        session_placeholder = f"%SESSION_ID_{rand_num}%"

        payload: dict[str, Any] = {
            "u": account_placeholder,
            "a": self.device.fb_user_agent,
            "cp": int(Capabilities.default_set()),
            "mqtt_sid": session_placeholder,
            "nwt": NETWORK_TYPE_WIFI,
            "nwst": NETWORK_SUBTYPE,
            "chat_on": False,
            "no_auto_fg": True,
            "d": self.account.device_id,
            "ds": self.account.device_secret,
            "fg": False,
            "ecp": 0,
            "pf": PUBLISH_FORMAT,
            "ct": CLIENT_TYPE,
            "aid": self.profile.analytics_app_id,
            "st": self._wire_topic_ids(),
            "clientStack": CLIENT_STACK,
            "app_specific_info": self.app_specific_info(),
        }
        result = json.dumps(payload, separators=(",", ":"))
        result = result.replace(json.dumps(account_placeholder), self.account.user_id)
        result = result.replace(json.dumps(session_placeholder), str(session_id))
        logger.debug(
            "%s built handshake username",
            self.lp,
            extra={"session_id": session_id, "topics": payload["st"]},
        )
        return result

    def build_credentials(self) -> HandshakeCredentials:
        return HandshakeCredentials(
            username=self.build_username(),
            password=self.account.password,
            client_id=self.account.client_id,
        )
