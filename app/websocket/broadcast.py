# =============================================================================
# app/websocket/broadcast.py - Cross-Process Change Notifications
# =============================================================================
# Redis-backed change feed for deployments with more than one API worker.
#
# Uses Redis pub/sub for cross-process communication:
# - notify() / close_topic() publish an event instead of dispatching
# - every worker's pub/sub listener (app/main.py) receives it and runs
#   the local listeners via dispatch() / close_local()
#
# Events:
#   {"topic": "todos:<owner>", "action": "changed"}  data behind topic changed
#   {"topic": "todos:<owner>", "action": "closed"}   cancel live queries (sign-out)
# =============================================================================

import json
import logging
from typing import Any

import redis

from core.services.change_feed import ChangeFeed

logger = logging.getLogger(__name__)

# Redis channel for change events
CHANGE_FEED_CHANNEL = "taskboard:changes"

ACTION_CHANGED = "changed"
ACTION_CLOSED = "closed"


def encode_event(topic: str, action: str) -> str:
    return json.dumps({"topic": topic, "action": action})


def decode_event(raw: str | bytes) -> tuple[str, str]:
    """
    Parse a change event.

    Raises:
        ValueError: If the payload is not a valid event
    """
    data: Any = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Change event must be a JSON object")

    topic = data.get("topic")
    action = data.get("action")
    if not isinstance(topic, str) or action not in (ACTION_CHANGED, ACTION_CLOSED):
        raise ValueError(f"Malformed change event: {data}")
    return topic, action


def apply_event(feed: ChangeFeed, raw: str | bytes) -> int:
    """Run a received event against this process's listeners."""
    topic, action = decode_event(raw)
    if action == ACTION_CLOSED:
        return feed.close_local(topic)
    return feed.dispatch(topic)


class RedisChangeFeed(ChangeFeed):
    """
    ChangeFeed whose notifications travel through Redis pub/sub.

    Listener registration stays local; only notify/close are published.
    If publishing fails the event is applied locally so this worker's
    clients still update.
    """

    def __init__(self, client: redis.Redis, channel: str = CHANGE_FEED_CHANNEL):
        super().__init__()
        self._redis = client
        self.channel = channel

    @classmethod
    def from_url(cls, url: str) -> "RedisChangeFeed":
        return cls(redis.from_url(url))

    def notify(self, topic: str) -> None:
        if not self._publish(topic, ACTION_CHANGED):
            self.dispatch(topic)

    def close_topic(self, topic: str) -> int:
        count = self.listener_count(topic)
        if not self._publish(topic, ACTION_CLOSED):
            return self.close_local(topic)
        return count

    def _publish(self, topic: str, action: str) -> bool:
        try:
            self._redis.publish(self.channel, encode_event(topic, action))
        except redis.RedisError as e:
            logger.error(f"Failed to publish {action} event for {topic}: {e}")
            return False

        logger.debug(f"Published {action} event for {topic}")
        return True
