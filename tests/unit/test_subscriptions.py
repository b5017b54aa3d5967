"""
Unit tests for feature flag resolution and subscription planning.
"""

import pytest
from pydantic import ValidationError

from realtime_mqtt.mqtt.subscriptions import is_feature_enabled, load_feature_flags, plan_subscriptions
from realtime_mqtt.structs import FeatureFlags

USER_ID = "123456789"

ALL_ENABLED = {
    "ig_android_realtime_iris": {
        "is_direct_over_iris_enabled": "true",
        "pubsub_msg_type_blacklist": "display_update",
    },
    "ig_android_skywalker_live_event_start_end": {"is_enabled": "enabled"},
    "ig_android_gqls_typing_indicator": {"is_enabled": "1"},
}


class TestIsFeatureEnabled:
    """Tests for is_feature_enabled"""

    @pytest.mark.parametrize("value", ["enabled", "true", "1", "TRUE", "Enabled", True, 1])
    def test_enabled_values(self, value):
        """Test values that count as enabled"""
        assert is_feature_enabled({"flag": value}, "flag") is True

    @pytest.mark.parametrize("value", ["disabled", "false", "0", "", "yes", False, 0])
    def test_disabled_values(self, value):
        """Test values that count as disabled"""
        assert is_feature_enabled({"flag": value}, "flag") is False

    def test_missing_parameter(self):
        """Test that a missing parameter is disabled"""
        assert is_feature_enabled({}, "flag") is False


class TestLoadFeatureFlags:
    """Tests for load_feature_flags"""

    def test_no_experiments(self):
        """Test that missing experiments disable everything"""
        flags = load_feature_flags(None)

        assert flags == FeatureFlags()
        assert flags.msg_type_blacklist is None

    def test_all_enabled(self):
        """Test that every experiment group is read"""
        flags = load_feature_flags(ALL_ENABLED)

        assert flags.iris_enabled is True
        assert flags.mqtt_live_enabled is True
        assert flags.graphql_enabled is True
        assert flags.msg_type_blacklist == "display_update"

    def test_non_mapping_group_ignored(self):
        """Test that a malformed experiment group counts as missing"""
        flags = load_feature_flags({"ig_android_realtime_iris": "enabled"})

        assert flags.iris_enabled is False

    def test_flags_are_frozen(self):
        """Test that resolved flags cannot be mutated"""
        flags = load_feature_flags(ALL_ENABLED)

        with pytest.raises(ValidationError):
            flags.iris_enabled = False


class TestPlanSubscriptions:
    """Tests for plan_subscriptions"""

    def test_all_flags_disabled(self, no_flags):
        """Test that only the direct topic is planned by default"""
        subscriptions = plan_subscriptions(USER_ID, no_flags)

        assert subscriptions.pubsub == (f"ig/u/v1/{USER_ID}",)
        assert subscriptions.graphql == ()

    def test_all_flags_enabled(self, all_flags):
        """Test that live precedes direct and typing is planned"""
        subscriptions = plan_subscriptions(USER_ID, all_flags)

        assert subscriptions.pubsub == (
            f"ig/live_notification_subscribe/{USER_ID}",
            f"ig/u/v1/{USER_ID}",
        )
        assert subscriptions.graphql == (
            f'1/graphqlsubscriptions/17867973967082385/{{"input_data": {{"user_id":{USER_ID}}}}}',
        )

    def test_typing_topic_literal(self):
        """Test the exact typing topic text"""
        subscriptions = plan_subscriptions("42", FeatureFlags(graphql_enabled=True))

        assert subscriptions.graphql == ('1/graphqlsubscriptions/17867973967082385/{"input_data": {"user_id":42}}',)
