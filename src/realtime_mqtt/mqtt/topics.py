"""Topic names and their compact wire identifiers.

Outbound topic names are replaced by short numeric ids before publishing and
inbound ids are expanded back to names before dispatch.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Final

from realtime_mqtt.logging_abstraction import get_logger

__all__ = ["DEFAULT_TOPIC_IDS", "TopicRegistry", "Topics"]

logger = get_logger(__name__)


class Topics:
    PUBSUB: Final = "/pubsub"
    SEND_MESSAGE: Final = "/ig_send_message"
    SEND_MESSAGE_RESPONSE: Final = "/ig_send_message_response"
    IRIS_SUB: Final = "/ig_sub_iris"
    IRIS_SUB_RESPONSE: Final = "/ig_sub_iris_response"
    MESSAGE_SYNC: Final = "/ig_message_sync"
    REALTIME_SUB: Final = "/ig_realtime_sub"
    GRAPHQL: Final = "/graphql"
    REGION_HINT: Final = "/t_region_hint"

    # Subscription topic templates, formatted with the numeric user id
    DIRECT: Final = "ig/u/v1/{user_id}"
    LIVE: Final = "ig/live_notification_subscribe/{user_id}"
    TYPING: Final = '1/graphqlsubscriptions/17867973967082385/{{"input_data": {{"user_id":{user_id}}}}}'


DEFAULT_TOPIC_IDS: Final[Mapping[str, str]] = MappingProxyType(
    {
        Topics.PUBSUB: "88",
        Topics.SEND_MESSAGE: "132",
        Topics.SEND_MESSAGE_RESPONSE: "133",
        Topics.IRIS_SUB: "134",
        Topics.IRIS_SUB_RESPONSE: "135",
        Topics.MESSAGE_SYNC: "146",
        Topics.REALTIME_SUB: "149",
        Topics.GRAPHQL: "9",
        Topics.REGION_HINT: "150",
    },
)


class TopicRegistry:
    """Bidirectional name <-> wire id table, immutable after construction.

    Both lookups are total: a miss returns the input unchanged and is logged
    as a warning.
    """

    def __init__(self, topic_ids: Mapping[str, str] | None = None) -> None:
        self.lp = "TopicRegistry:"
        table = dict(DEFAULT_TOPIC_IDS if topic_ids is None else topic_ids)
        reverse = {wire_id: name for name, wire_id in table.items()}
        if len(reverse) != len(table):
            msg = "Topic wire ids must be unique"
            raise ValueError(msg)
        self._to_wire: Mapping[str, str] = MappingProxyType(table)
        self._from_wire: Mapping[str, str] = MappingProxyType(reverse)

    def __contains__(self, name: object) -> bool:
        return name in self._to_wire

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._to_wire)

    def map_to_wire_id(self, name: str) -> str:
        wire_id = self._to_wire.get(name)
        if wire_id is None:
            logger.warning("%s Topic '%s' not found in the enum", self.lp, name)
            return name
        logger.debug("%s Mapped topic '%s' to '%s'", self.lp, name, wire_id)
        return wire_id

    def map_from_wire_id(self, wire_id: str) -> str:
        name = self._from_wire.get(wire_id)
        if name is None:
            logger.warning("%s Topic '%s' not found in the enum", self.lp, wire_id)
            return wire_id
        logger.debug("%s Mapped topic '%s' to '%s'", self.lp, wire_id, name)
        return name
