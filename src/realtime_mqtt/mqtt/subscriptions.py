"""Feature flags from experiments and the topic lists they imply."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Final

from realtime_mqtt.logging_abstraction import get_logger
from realtime_mqtt.mqtt.topics import Topics
from realtime_mqtt.structs import FeatureFlags, SubscriptionSet

__all__ = ["ENABLED_VALUES", "is_feature_enabled", "load_feature_flags", "plan_subscriptions"]

logger = get_logger(__name__)

ENABLED_VALUES: Final = ("enabled", "true", "1")

IRIS_EXPERIMENT: Final = "ig_android_realtime_iris"
LIVE_EXPERIMENT: Final = "ig_android_skywalker_live_event_start_end"
GRAPHQL_EXPERIMENT: Final = "ig_android_gqls_typing_indicator"


def is_feature_enabled(params: Mapping[str, Any], feature: str) -> bool:
    value = params.get(feature)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().casefold() in ENABLED_VALUES


def _group(experiments: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    params = experiments.get(name)
    if not isinstance(params, Mapping):
        return {}
    return params


def load_feature_flags(experiments: Mapping[str, Any] | None) -> FeatureFlags:
    """Resolve experiment parameters into immutable feature flags.

    Missing experiment groups or parameters count as disabled.
    """
    experiments = experiments or {}
    direct = _group(experiments, IRIS_EXPERIMENT)
    live = _group(experiments, LIVE_EXPERIMENT)
    graphql = _group(experiments, GRAPHQL_EXPERIMENT)

    blacklist = direct.get("pubsub_msg_type_blacklist")
    flags = FeatureFlags(
        iris_enabled=is_feature_enabled(direct, "is_direct_over_iris_enabled"),
        mqtt_live_enabled=is_feature_enabled(live, "is_enabled"),
        graphql_enabled=is_feature_enabled(graphql, "is_enabled"),
        msg_type_blacklist=str(blacklist) if blacklist is not None else None,
    )
    logger.debug(
        "Resolved feature flags",
        extra={
            "iris_enabled": flags.iris_enabled,
            "mqtt_live_enabled": flags.mqtt_live_enabled,
            "graphql_enabled": flags.graphql_enabled,
        },
    )
    return flags


def plan_subscriptions(user_id: str, flags: FeatureFlags) -> SubscriptionSet:
    """Derive pubsub and GraphQL subscription topics for ``user_id``.

    The live-notification topic (when enabled) precedes the direct topic.
    """
    pubsub: list[str] = []
    if flags.mqtt_live_enabled:
        pubsub.append(Topics.LIVE.format(user_id=user_id))
    pubsub.append(Topics.DIRECT.format(user_id=user_id))

    graphql: list[str] = []
    if flags.graphql_enabled:
        graphql.append(Topics.TYPING.format(user_id=user_id))

    return SubscriptionSet(pubsub=tuple(pubsub), graphql=tuple(graphql))
