import logging

from asgiref.sync import async_to_sync
from celery import shared_task
from channels.layers import get_channel_layer
from django.db import transaction

from users.models import User

logger = logging.getLogger("celery")


def push_to_user(notification) -> None:
    """Relay a stored notification to the recipient's open sockets, if any."""

    from .consumers import user_group
    from .serializers import NotificationSerializer

    try:
        channel_layer = get_channel_layer()
        if channel_layer is None:
            return
        async_to_sync(channel_layer.group_send)(
            user_group(notification.user_id),
            {"type": "send_notification", "message": NotificationSerializer(notification).data},
        )
    except Exception as e:
        logger.warning("WebSocket notify failed for notification %s: %s", notification.pk, e)


@shared_task(name="notifications.tasks.deliver_notification_task")
def deliver_notification_task(payload):
    """
    Write one notification row. No retries: a failure is logged and recorded.
    """
    from .dispatcher import record_failure
    from .models import Notification

    try:
        with transaction.atomic():
            recipient = User.objects.get(pk=payload["recipient_id"])
            sender = None
            if payload.get("sender_id"):
                sender = User.objects.filter(pk=payload["sender_id"]).first()
            notification = Notification.objects.create(
                user=recipient,
                sender=sender,
                type=payload.get("type") or Notification.Type.GENERAL,
                title=payload.get("title", "")[:200],
                message=payload.get("message", ""),
                related_id=payload.get("related_id"),
                related_type=payload.get("related_type"),
            )
    except User.DoesNotExist:
        logger.error("Recipient %s not found for notification %s", payload.get("recipient_id"), payload.get("type"))
        record_failure(payload, "recipient not found")
        return None
    except Exception as e:
        logger.error("Failed to store notification %s: %s", payload.get("type"), e)
        record_failure(payload, e)
        return None

    logger.info("Notification %s stored for user %s", notification.type, notification.user_id)
    push_to_user(notification)
    return notification.pk
