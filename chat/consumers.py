import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.core.exceptions import ValidationError

from common.exceptions import QuotaExceededError, WorkingGoError

from . import services
from .feed import MessageEvent, conversation_group
from .models import Conversation

logger = logging.getLogger("chat")


class ChatConsumer(AsyncWebsocketConsumer):
    """
    ws/chat/<conversation_id>/ for the two participants.

    This is the socket-side counterpart of :class:`chat.feed.MessageFeed`:
    the feed owns a channel of its own, while here the channel belongs to the
    websocket connection, so the consumer joins the same group and applies the
    same payload parsing and id de-duplication to the events it relays.

    Incoming frames: {"type": "message", "content": ...} and {"type": "read"}.
    Opening the socket and every relayed message from the other participant
    mark the conversation read.
    """

    group_name = None

    async def connect(self):
        user = self.scope.get("user")
        if not user or user.is_anonymous:
            await self.close()
            return

        self.conversation_id = self.scope['url_route']['kwargs'].get('conversation_id')
        if not self.conversation_id or not await self.is_participant(self.conversation_id, user):
            await self.close()
            return

        self.seen_ids = set()
        self.group_name = conversation_group(self.conversation_id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        await self.mark_read_and_announce(user)

    async def disconnect(self, close_code):
        if not self.group_name:
            return
        try:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)
        except Exception:
            logger.exception("Error leaving %s", self.group_name)

    async def receive(self, text_data=None, bytes_data=None):
        user = self.scope.get("user")
        if not user or user.is_anonymous:
            await self.send(json.dumps({"error": "unauthenticated"}))
            return

        try:
            data = json.loads(text_data or "")
        except ValueError:
            data = None
        if not isinstance(data, dict):
            await self.send(json.dumps({"error": "invalid_json"}))
            return

        msg_type = data.get("type", "message")
        if msg_type == "message":
            try:
                await self.create_message(self.conversation_id, user, data.get("content", ""))
            except QuotaExceededError as exc:
                await self.send(json.dumps({"error": "quota_exceeded", "detail": exc.detail}))
            except ValidationError as exc:
                await self.send(json.dumps({"error": "invalid_message", "detail": " ".join(exc.messages)}))
            except WorkingGoError as exc:
                await self.send(json.dumps({"error": "send_failed", "detail": exc.detail}))

        elif msg_type == "read":
            await self.mark_read_and_announce(user)

    async def chat_message(self, event):
        message = event.get("message", {})
        try:
            parsed = MessageEvent.from_payload(message)
        except (KeyError, TypeError, ValueError):
            logger.warning("Dropping malformed event on %s: %r", self.group_name, event)
            return
        if parsed.id in self.seen_ids:
            return
        self.seen_ids.add(parsed.id)
        await self.send(text_data=json.dumps({"type": "message", "message": message}))

        user = self.scope.get("user")
        if user and not user.is_anonymous and parsed.sender_id != user.pk:
            await self.mark_read_and_announce(user)

    async def chat_read(self, event):
        await self.send(text_data=json.dumps({
            "type": "read",
            "reader": event.get("reader"),
            "conversation": event.get("conversation"),
        }))

    async def mark_read_and_announce(self, user):
        """Mark the other side's messages read and tell the group when any flipped."""

        try:
            updated = await self.mark_messages_read(self.conversation_id, user)
        except WorkingGoError as exc:
            await self.send(json.dumps({"error": "read_failed", "detail": exc.detail}))
            return
        if updated:
            await self.channel_layer.group_send(
                self.group_name,
                {"type": "chat.read", "reader": user.id, "conversation": int(self.conversation_id)},
            )

    # ---------------- DB helpers ----------------
    @database_sync_to_async
    def is_participant(self, conversation_id, user):
        conversation = Conversation.objects.filter(pk=conversation_id).first()
        return bool(conversation and conversation.has_participant(user))

    @database_sync_to_async
    def create_message(self, conversation_id, sender, content):
        return services.send_message(conversation_id, sender, content)

    @database_sync_to_async
    def mark_messages_read(self, conversation_id, reader):
        return services.mark_read(conversation_id, reader)
