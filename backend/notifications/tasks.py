"""Celery tasks for notification delivery."""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(ignore_result=True)
def deliver_notification(recipient_id: int, sender_id, notification_type: str, message: str):
    """
    Persist and push one notification.

    Scheduled by CeleryNotificationSink after the ride transaction commits.
    """
    from .sinks import deliver

    try:
        notification = deliver(recipient_id, sender_id, notification_type, message)
    except Exception:
        logger.exception(
            "Failed to deliver %s notification to user %s", notification_type, recipient_id
        )
        return None

    logger.info("Delivered %s notification #%s to user %s", notification_type, notification.id, recipient_id)
    return notification.id
