import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from .models import Notification

logger = logging.getLogger(__name__)


def user_group(user_id) -> str:
    return f"notifications_{user_id}"


class NotificationConsumer(AsyncWebsocketConsumer):
    """
    ws/notifications/ for the authenticated user.

    Server frames: {"type": "notification", ...} and {"type": "unread_count", ...}.
    Client frames: {"type": "read", "id": <notification id>}; without an id
    every unread notification is marked read.
    """

    group_name = None

    async def connect(self):
        user = self.scope.get("user")
        if not user or user.is_anonymous:
            await self.close()
            return

        self.group_name = user_group(user.id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        await self.send_unread_count(user)

    async def disconnect(self, close_code):
        if not self.group_name:
            return
        try:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)
        except Exception:
            logger.exception("Failed to remove channel from %s", self.group_name)

    async def receive(self, text_data=None, bytes_data=None):
        user = self.scope.get("user")
        try:
            data = json.loads(text_data or "")
        except ValueError:
            data = None
        if not isinstance(data, dict):
            await self.send(json.dumps({"error": "invalid_json"}))
            return

        if data.get("type") != "read":
            await self.send(json.dumps({"error": "unknown_type"}))
            return
        await self.mark_read(user, data.get("id"))
        await self.send_unread_count(user)

    async def send_notification(self, event):
        await self.send(text_data=json.dumps({
            "type": "notification",
            "notification": event.get("message", {}),
        }))

    async def send_unread_count(self, user):
        unread = await self.unread_count(user)
        await self.send(text_data=json.dumps({"type": "unread_count", "unread": unread}))

    # ---------------- DB helpers ----------------
    @database_sync_to_async
    def unread_count(self, user):
        return Notification.objects.filter(user=user, status=Notification.Status.UNREAD).count()

    @database_sync_to_async
    def mark_read(self, user, notification_id=None):
        qs = Notification.objects.filter(user=user, status=Notification.Status.UNREAD)
        if notification_id is not None:
            qs = qs.filter(pk=notification_id)
        return qs.update(status=Notification.Status.READ)
