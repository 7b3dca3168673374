"""Conversation resolution, message storage and push publication."""

from __future__ import annotations

import logging
from typing import Iterable, Tuple

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count, F, OuterRef, Q, Subquery

from common.exceptions import ForbiddenError, NotFoundError, wrap_store_errors
from notifications.dispatcher import notify_template
from notifications.models import Notification
from payments.services import check_message_quota
from users.models import User

from .feed import MESSAGE_EVENT_TYPE, MessageFeed, conversation_group
from .models import Conversation, Message

logger = logging.getLogger("chat")


def canonical_pair(user_a, user_b) -> Tuple[int, int]:
    """Sorted id pair identifying the conversation between two users."""

    a = getattr(user_a, "pk", user_a)
    b = getattr(user_b, "pk", user_b)
    if a is None or b is None:
        raise ValidationError("Both participants are required.")
    a, b = int(a), int(b)
    if a == b:
        raise ValidationError("A user cannot start a conversation with themselves.")
    return (a, b) if a < b else (b, a)


@wrap_store_errors
def get_or_create_conversation(user_a, user_b) -> Conversation:
    low, high = canonical_pair(user_a, user_b)
    if User.objects.filter(pk__in=(low, high)).count() != 2:
        raise NotFoundError("User not found.")

    try:
        with transaction.atomic():
            conversation, created = Conversation.objects.get_or_create(
                user_low_id=low, user_high_id=high
            )
    except IntegrityError:
        # lost the first-contact race; the row exists now
        conversation = Conversation.objects.get(user_low_id=low, user_high_id=high)
        created = False

    if created:
        logger.info("Conversation %s created for users %s and %s", conversation.pk, low, high)
    return conversation


@wrap_store_errors
def get_conversation_for(conversation_id, user) -> Conversation:
    try:
        conversation = Conversation.objects.get(pk=conversation_id)
    except Conversation.DoesNotExist as exc:
        raise NotFoundError("Conversation not found.") from exc
    if not conversation.has_participant(user):
        raise ForbiddenError("You are not part of this conversation.")
    return conversation


def serialize_message(message: Message) -> dict:
    return {
        "id": message.pk,
        "conversation": message.conversation_id,
        "sender": message.sender_id,
        "content": message.content,
        "read": message.read,
        "created_at": message.created_at.isoformat(),
    }


def publish_message(message: Message, channel_layer=None) -> None:
    """Push a stored message to the conversation group; failures only log."""

    try:
        channel_layer = channel_layer or get_channel_layer()
        if channel_layer is None:
            return
        async_to_sync(channel_layer.group_send)(
            conversation_group(message.conversation_id),
            {"type": MESSAGE_EVENT_TYPE, "message": serialize_message(message)},
        )
    except Exception as e:
        logger.warning("Publish of message %s failed: %s", message.pk, e)


@wrap_store_errors
def send_message(conversation_id, sender, content) -> Message:
    if content is not None and not isinstance(content, str):
        raise ValidationError("Message content must be text.")
    content = (content or "").strip()
    if not content:
        raise ValidationError("Message content cannot be empty.")

    conversation = get_conversation_for(conversation_id, sender)
    check_message_quota(sender, conversation)

    message = Message.objects.create(conversation=conversation, sender=sender, content=content)
    transaction.on_commit(lambda: publish_message(message))

    recipient = User.objects.filter(pk=conversation.other_participant_id(sender)).first()
    notify_template(
        Notification.Type.MENSAJE_NUEVO,
        recipient,
        sender,
        related_id=conversation.pk,
        related_type="conversation",
    )
    return message


@wrap_store_errors
def list_messages(conversation_id, reader):
    conversation = get_conversation_for(conversation_id, reader)
    return Message.objects.filter(conversation=conversation).order_by("created_at", "id")


@wrap_store_errors
def mark_read(conversation_id, reader) -> int:
    conversation = get_conversation_for(conversation_id, reader)
    updated = (
        Message.objects.filter(conversation=conversation, read=False)
        .exclude(sender=reader)
        .update(read=True)
    )
    if updated:
        logger.debug("User %s read %s messages in conversation %s", reader.pk, updated, conversation.pk)
    return updated


@wrap_store_errors
def conversations_for(user):
    """Conversations of ``user`` with the last message and unread count."""

    last = Message.objects.filter(conversation=OuterRef("pk")).order_by("-created_at", "-id")
    return (
        Conversation.objects.filter(Q(user_low=user) | Q(user_high=user))
        .select_related("user_low", "user_high")
        .annotate(
            last_message=Subquery(last.values("content")[:1]),
            last_message_at=Subquery(last.values("created_at")[:1]),
            unread_count=Count(
                "messages",
                filter=Q(messages__read=False) & ~Q(messages__sender=user),
            ),
        )
        .order_by(F("last_message_at").desc(nulls_last=True), "-created_at")
    )


def subscribe_to_new_messages(conversation_id, seen_ids: Iterable[int] = (), channel_layer=None) -> MessageFeed:
    """Unopened feed; the caller owns it and must ``close()`` it."""

    return MessageFeed(conversation_id, seen_ids=seen_ids, channel_layer=channel_layer)


__all__ = [
    "canonical_pair",
    "conversations_for",
    "get_conversation_for",
    "get_or_create_conversation",
    "list_messages",
    "mark_read",
    "publish_message",
    "send_message",
    "serialize_message",
    "subscribe_to_new_messages",
]
