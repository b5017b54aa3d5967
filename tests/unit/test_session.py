"""
Unit tests for handshake negotiation.

Tests session id computation, subscribe topic selection, the app specific
info block and the placeholder-substituted username document.
"""

from __future__ import annotations

import json
import random
import zoneinfo
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from realtime_mqtt.mqtt.session import Capabilities, SessionNegotiator
from realtime_mqtt.mqtt.topics import Topics
from realtime_mqtt.structs import AccountIdentity, AppProfile, DeviceIdentity, FeatureFlags

WEDNESDAY = datetime(2024, 1, 17, 10, 0, tzinfo=UTC)
WEDNESDAY_SESSION_ID = 208_800_000  # 2 days 10 hours

EXPECTED_KEYS = [
    "u",
    "a",
    "cp",
    "mqtt_sid",
    "nwt",
    "nwst",
    "chat_on",
    "no_auto_fg",
    "d",
    "ds",
    "fg",
    "ecp",
    "pf",
    "ct",
    "aid",
    "st",
    "clientStack",
    "app_specific_info",
]


def make_negotiator(device, account, flags, **kwargs):
    return SessionNegotiator(
        device,
        account,
        flags,
        profile=AppProfile(app_version="107.0.0.27.121", capabilities="3brTvw==", accept_language="en-US"),
        clock=lambda: WEDNESDAY,
        rng=random.Random(1),
        **kwargs,
    )


class TestSessionId:
    """Tests for SessionNegotiator.session_id"""

    def test_midweek(self):
        """Test milliseconds since midnight of the preceding Monday"""
        assert SessionNegotiator.session_id(WEDNESDAY) == WEDNESDAY_SESSION_ID

    def test_on_monday_goes_back_a_week(self):
        """Test that on a Monday the previous week's Monday is used"""
        now = datetime(2024, 1, 15, 0, 0, 1, 500000, tzinfo=UTC)

        assert SessionNegotiator.session_id(now) == 604_801_500

    def test_on_sunday(self):
        """Test the largest offset of a week"""
        now = datetime(2024, 1, 21, 23, 59, 59, tzinfo=UTC)

        assert SessionNegotiator.session_id(now) == 604_799_000

    def test_dst_change_during_week(self):
        """Test that elapsed time is real time across a DST switch"""
        tz = zoneinfo.ZoneInfo("America/New_York")
        # Clocks moved forward on Sunday 2024-03-10
        now = datetime(2024, 3, 10, 12, 0, tzinfo=tz)

        assert SessionNegotiator.session_id(now) == 558_000_000


class TestSubscribeTopics:
    """Tests for the handshake subscribe topic list"""

    def test_all_flags(self, device_identity, account_identity, all_flags):
        """Test topic order with every feature enabled"""
        negotiator = make_negotiator(device_identity, account_identity, all_flags)

        assert negotiator.subscribe_topics() == [
            Topics.PUBSUB,
            Topics.REALTIME_SUB,
            Topics.SEND_MESSAGE_RESPONSE,
            Topics.IRIS_SUB_RESPONSE,
            Topics.MESSAGE_SYNC,
        ]

    def test_no_flags(self, device_identity, account_identity, no_flags):
        """Test the always-present topics"""
        negotiator = make_negotiator(device_identity, account_identity, no_flags)

        assert negotiator.subscribe_topics() == [Topics.PUBSUB, Topics.SEND_MESSAGE_RESPONSE]


class TestAppSpecificInfo:
    """Tests for the app_specific_info block"""

    def test_key_order_with_blacklist(self, device_identity, account_identity):
        """Test that the blacklist precedes Accept-Language, which is last"""
        flags = FeatureFlags(graphql_enabled=True, msg_type_blacklist="display_update")
        negotiator = make_negotiator(device_identity, account_identity, flags)

        info = negotiator.app_specific_info()

        assert list(info) == [
            "platform",
            "app_version",
            "capabilities",
            "User-Agent",
            "ig_mqtt_route",
            "pubsub_msg_type_blacklist",
            "Accept-Language",
        ]
        assert info["pubsub_msg_type_blacklist"] == "display_update, typing_type"
        assert info["ig_mqtt_route"] == "django"
        assert info["User-Agent"] == device_identity.user_agent

    def test_typing_only(self, device_identity, account_identity):
        """Test that typing_type is set outright without a configured fragment"""
        negotiator = make_negotiator(device_identity, account_identity, FeatureFlags(graphql_enabled=True))

        assert negotiator.app_specific_info()["pubsub_msg_type_blacklist"] == "typing_type"

    def test_blacklist_omitted_when_empty(self, device_identity, account_identity, no_flags):
        """Test that an empty blacklist is left out entirely"""
        negotiator = make_negotiator(device_identity, account_identity, no_flags)

        info = negotiator.app_specific_info()

        assert "pubsub_msg_type_blacklist" not in info
        assert list(info)[-1] == "Accept-Language"

    def test_fragment_without_graphql(self, device_identity, account_identity):
        """Test that the configured fragment is passed through unchanged"""
        flags = FeatureFlags(msg_type_blacklist="display_update")
        negotiator = make_negotiator(device_identity, account_identity, flags)

        assert negotiator.app_specific_info()["pubsub_msg_type_blacklist"] == "display_update"


class TestBuildUsername:
    """Tests for the handshake username document"""

    def test_key_order(self, device_identity, account_identity, all_flags):
        """Test that handshake keys keep their order"""
        negotiator = make_negotiator(device_identity, account_identity, all_flags)

        document = json.loads(negotiator.build_username())

        assert list(document) == EXPECTED_KEYS

    def test_numeric_user_and_session_ids(self, device_identity, account_identity, all_flags):
        """Test that placeholders are replaced with raw numbers"""
        negotiator = make_negotiator(device_identity, account_identity, all_flags)

        username = negotiator.build_username()
        document = json.loads(username)

        assert "%ACCOUNT_ID_" not in username
        assert "%SESSION_ID_" not in username
        assert f'"u":{account_identity.user_id},' in username
        assert document["u"] == int(account_identity.user_id)
        assert document["mqtt_sid"] == WEDNESDAY_SESSION_ID

    def test_fields(self, device_identity, account_identity, all_flags):
        """Test the constant and identity-derived fields"""
        negotiator = make_negotiator(device_identity, account_identity, all_flags)

        document = json.loads(negotiator.build_username())

        assert document["a"] == device_identity.fb_user_agent
        assert document["cp"] == int(Capabilities.default_set())
        assert document["nwt"] == 1
        assert document["nwst"] == 0
        assert document["chat_on"] is False
        assert document["no_auto_fg"] is True
        assert document["d"] == account_identity.device_id
        assert document["ds"] == account_identity.device_secret
        assert document["fg"] is False
        assert document["ecp"] == 0
        assert document["pf"] == "jz"
        assert document["ct"] == "cookie_auth"
        assert document["aid"] == "567067343352427"
        assert document["clientStack"] == 3
        assert "typing_type" in document["app_specific_info"]["pubsub_msg_type_blacklist"]

    def test_subscribe_topics_use_wire_ids(self, device_identity, account_identity, all_flags):
        """Test that the handshake carries compact topic ids"""
        negotiator = make_negotiator(device_identity, account_identity, all_flags)

        document = json.loads(negotiator.build_username())

        assert document["st"] == [88, 149, 133, 135, 146]

    def test_placeholders_are_randomized(self, device_identity, account_identity, no_flags):
        """Test that the rng is consulted for the placeholder buster"""
        rng = random.Random(7)
        negotiator = SessionNegotiator(device_identity, account_identity, no_flags, clock=lambda: WEDNESDAY, rng=rng)
        state = rng.getstate()

        _ = negotiator.build_username()

        assert rng.getstate() != state

    def test_build_credentials(self, device_identity, account_identity, no_flags):
        """Test that password and client id come from the account"""
        negotiator = make_negotiator(device_identity, account_identity, no_flags)

        credentials = negotiator.build_credentials()

        assert credentials.password == account_identity.password
        assert credentials.client_id == account_identity.client_id
        assert json.loads(credentials.username)["u"] == int(account_identity.user_id)


class TestCapabilities:
    """Tests for the capability bitmask"""

    def test_default_set_value(self):
        """Test the advertised default capability bits"""
        assert int(Capabilities.default_set()) == 439

    def test_default_set_members(self):
        """Test that enum topics and acknowledged delivery are advertised"""
        default = Capabilities.default_set()

        assert Capabilities.USE_ENUM_TOPIC in default
        assert Capabilities.ACKNOWLEDGED_DELIVERY in default
        assert Capabilities.DATA_SAVING_MODE not in default


class TestIdentityValidation:
    """Tests for fail-fast identity models"""

    def test_non_numeric_user_id_rejected(self):
        """Test that the user id must be numeric"""
        with pytest.raises(ValidationError):
            _ = AccountIdentity(
                user_id="abc",
                password="p",
                client_id="c",
                device_id="d",
                device_secret="s",
            )

    def test_empty_field_rejected(self):
        """Test that empty credentials are rejected"""
        with pytest.raises(ValidationError):
            _ = AccountIdentity(
                user_id="1",
                password="p",
                client_id="c",
                device_id="d",
                device_secret="",
            )

    def test_missing_user_agent_rejected(self):
        """Test that both user agents are required"""
        with pytest.raises(ValidationError):
            _ = DeviceIdentity(user_agent="ua")  # type: ignore[call-arg]
