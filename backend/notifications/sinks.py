"""
Notification sinks.

The ride coordinator hands every notification to a sink and never waits on
the result. Sinks persist a Notification row and push it to the recipient's
realtime group; how and when that happens depends on the sink.
"""

import logging
from typing import Optional

from django.conf import settings
from django.utils.module_loading import import_string

from realtime.publisher import EventPublisher, default_publisher, user_group

from .models import Notification
from .serializers import NotificationSerializer

logger = logging.getLogger(__name__)


def deliver(
    recipient_id: int,
    sender_id: Optional[int],
    notification_type: str,
    message: str,
    publisher: Optional[EventPublisher] = None,
) -> Notification:
    """Persist a notification and push it to the recipient's WebSocket group."""
    notification = Notification.objects.create(
        recipient_id=recipient_id,
        sender_id=sender_id,
        type=notification_type,
        message=message,
    )

    publisher = publisher or default_publisher()
    publisher.publish(
        user_group(recipient_id),
        "notification",
        {"notification": NotificationSerializer(notification).data},
    )
    return notification


class NotificationSink:
    """Accepts fire-and-forget notifications."""

    def emit(self, recipient_id: int, sender_id: Optional[int], notification_type: str, message: str) -> None:
        raise NotImplementedError


class DatabaseNotificationSink(NotificationSink):
    """Delivers in the calling process."""

    def __init__(self, publisher: Optional[EventPublisher] = None):
        self.publisher = publisher

    def emit(self, recipient_id, sender_id, notification_type, message):
        deliver(recipient_id, sender_id, notification_type, message, publisher=self.publisher)


class CeleryNotificationSink(NotificationSink):
    """Queues delivery on a Celery worker."""

    def emit(self, recipient_id, sender_id, notification_type, message):
        from .tasks import deliver_notification

        deliver_notification.delay(recipient_id, sender_id, notification_type, message)


def get_notification_sink() -> NotificationSink:
    """Instantiate the sink named by the RIDES_NOTIFICATION_SINK setting."""
    sink_class = import_string(settings.RIDES_NOTIFICATION_SINK)
    return sink_class()
