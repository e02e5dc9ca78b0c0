# =============================================================================
# core/services/change_feed.py - Change Notifications
# =============================================================================
# Services call `notify(topic)` after every successful write. Live queries
# listen on a topic and re-fetch their snapshot when it fires.
#
# Topics:
#   todos:{owner_id}  - any to-do of this owner changed
#   users:{user_id}   - this user's profile changed
#
# ChangeFeed dispatches inside the current process. The Redis-backed
# variant in app/websocket/broadcast.py publishes instead and relies on the
# app's pub/sub listener to call dispatch()/close_local() on every worker.
# =============================================================================

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

Listener = Callable[[], None]
Unsubscribe = Callable[[], None]


def todos_topic(owner_id: object) -> str:
    return f"todos:{owner_id}"


def profile_topic(user_id: object) -> str:
    return f"users:{user_id}"


class ChangeFeed:
    """
    In-process topic -> listeners registry.

    Listeners run synchronously in the notifying thread. A failing listener
    is logged and skipped so one broken subscriber cannot fail a write.
    """

    def __init__(self):
        # topic -> {listener_id: (on_change, on_close)}
        self._listeners: dict[str, dict[int, tuple[Listener, Listener | None]]] = {}
        self._lock = threading.Lock()
        self._next_id = 0

    def listen(
        self,
        topic: str,
        on_change: Listener,
        on_close: Listener | None = None,
    ) -> Unsubscribe:
        """
        Register a listener for a topic.

        Args:
            topic: Topic name (see todos_topic / profile_topic)
            on_change: Called after every change on the topic
            on_close: Called if the topic is closed (e.g. on sign-out)

        Returns:
            Function that removes the listener (safe to call twice)
        """
        with self._lock:
            listener_id = self._next_id
            self._next_id += 1
            self._listeners.setdefault(topic, {})[listener_id] = (on_change, on_close)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(topic)
                if listeners is None:
                    return
                listeners.pop(listener_id, None)
                if not listeners:
                    del self._listeners[topic]

        return unsubscribe

    def notify(self, topic: str) -> None:
        """Announce that data behind `topic` changed."""
        self.dispatch(topic)

    def close_topic(self, topic: str) -> int:
        """Drop every listener of a topic, calling their on_close hooks."""
        return self.close_local(topic)

    # -------------------------------------------------------------------------
    # Local delivery
    # -------------------------------------------------------------------------

    def dispatch(self, topic: str) -> int:
        """
        Run the change listeners registered in this process.

        Returns:
            Number of listeners invoked
        """
        with self._lock:
            callbacks = [on_change for on_change, _ in self._listeners.get(topic, {}).values()]

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.exception(f"Change listener for {topic} failed: {e}")

        if callbacks:
            logger.debug(f"Dispatched change on {topic} to {len(callbacks)} listeners")
        return len(callbacks)

    def close_local(self, topic: str) -> int:
        with self._lock:
            listeners = self._listeners.pop(topic, {})

        for _, on_close in listeners.values():
            if on_close is None:
                continue
            try:
                on_close()
            except Exception as e:
                logger.exception(f"Close hook for {topic} failed: {e}")

        if listeners:
            logger.info(f"Closed {len(listeners)} listeners on {topic}")
        return len(listeners)

    def listener_count(self, topic: str | None = None) -> int:
        with self._lock:
            if topic is not None:
                return len(self._listeners.get(topic, {}))
            return sum(len(listeners) for listeners in self._listeners.values())
