"""
Same-process broadcast channel.

Components publish on a topic; every subscriber of that topic is called
synchronously, in subscription order. A failing subscriber is logged and
does not stop delivery to the others.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from clinicrm.logging import get_logger

logger = get_logger(__name__)

# Fired whenever the admin bypass session is activated or cleared.
# Payload: {"active": bool}
BYPASS_CHANGED = "auth.bypass_changed"

# Fired when rows of one or more tables changed and views should refetch.
# Payload: {"tables": [table names]}
DATA_INVALIDATED = "data.invalidated"

Handler = Callable[[Dict[str, Any]], None]


class EventBus:
    """Topic-based publish/subscribe hub."""

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """
        Register a handler for a topic.

        Returns:
            A function that removes the subscription when called.
        """
        self._subscribers[topic].append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, topic: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """
        Deliver a payload to every subscriber of a topic.

        Returns:
            Number of handlers that ran without raising.
        """
        payload = payload or {}
        delivered = 0
        for handler in list(self._subscribers.get(topic, [])):
            try:
                handler(payload)
                delivered += 1
            except Exception as e:
                logger.error(f"Subscriber for '{topic}' failed: {e}", exc_info=True)
        logger.debug(f"Published '{topic}' to {delivered} subscriber(s)")
        return delivered

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))


def invalidate(events: Optional[EventBus], *tables: str) -> None:
    """Publish a DATA_INVALIDATED event for the given tables, if a bus is set."""
    if events is not None and tables:
        events.publish(DATA_INVALIDATED, {"tables": list(tables)})
