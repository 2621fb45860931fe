"""
Event publishing for realtime clients.

Components that push events (notification sinks, the conversation
directory) receive an EventPublisher instance instead of reaching for the
channel layer themselves, so tests and alternative transports can swap it.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def user_group(user_id) -> str:
    """Personal group every connected client of a user joins."""
    return f"user_{user_id}"


class EventPublisher:
    """Publishes an event to a named group of realtime subscribers."""

    def publish(self, group: str, event_type: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        raise NotImplementedError


class ChannelLayerPublisher(EventPublisher):
    """Sends events through a channels layer (Redis in production)."""

    def __init__(self, channel_layer=None):
        self.channel_layer = channel_layer

    def publish(self, group, event_type, payload=None):
        if self.channel_layer is None:
            logger.warning("No channel layer available, dropping %s for %s", event_type, group)
            return False

        message = {"type": event_type, **(payload or {})}
        try:
            async_to_sync(self.channel_layer.group_send)(group, message)
        except Exception:
            logger.exception("Failed to publish %s to %s", event_type, group)
            return False

        logger.debug("WS -> %s: %s", group, message)
        return True


class RecordingPublisher(EventPublisher):
    """Keeps published events in memory; used by tests and dry runs."""

    def __init__(self):
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    def publish(self, group, event_type, payload=None):
        self.events.append((group, event_type, dict(payload or {})))
        return True


def default_publisher() -> EventPublisher:
    """Build a publisher bound to the configured channel layer."""
    return ChannelLayerPublisher(get_channel_layer())
