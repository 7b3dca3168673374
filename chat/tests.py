import asyncio
import json
from unittest.mock import AsyncMock, patch

from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.layers import InMemoryChannelLayer, get_channel_layer
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.core.exceptions import ValidationError
from django.db import IntegrityError
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APITestCase
from rest_framework_simplejwt.tokens import AccessToken

from common.exceptions import ForbiddenError, NotFoundError, QuotaExceededError
from users.models import User
from . import services
from .consumers import ChatConsumer
from .feed import MESSAGE_EVENT_TYPE, MessageEvent, MessageFeed, conversation_group
from .middleware import JWTAuthMiddleware
from .models import Conversation, Message
from .routing import websocket_urlpatterns


def payload(message_id, conversation_id=1, sender=1, content="hola"):
    return {
        "type": "chat.message",
        "message": {
            "id": message_id,
            "conversation": conversation_id,
            "sender": sender,
            "content": content,
            "read": False,
            "created_at": "2026-01-01T10:00:00+00:00",
        },
    }


class CanonicalPairTests(SimpleTestCase):
    def test_pair_is_sorted(self):
        self.assertEqual(services.canonical_pair(9, 4), (4, 9))
        self.assertEqual(services.canonical_pair(4, 9), (4, 9))

    def test_self_conversation_rejected(self):
        with self.assertRaises(ValidationError):
            services.canonical_pair(3, 3)


class ConversationServiceTests(TestCase):
    def setUp(self):
        self.pro = User.objects.create_user(
            email="pro@example.com", password="pass1234", full_name="Pro", is_professional=True
        )
        self.client_user = User.objects.create_user(
            email="cli@example.com", password="pass1234", full_name="Cli"
        )
        self.outsider = User.objects.create_user(email="out@example.com", password="pass1234")

    def test_resolution_is_order_independent(self):
        first = services.get_or_create_conversation(self.pro, self.client_user)
        second = services.get_or_create_conversation(self.client_user, self.pro)

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Conversation.objects.count(), 1)
        self.assertLess(first.user_low_id, first.user_high_id)

    def test_lost_creation_race_returns_existing_row(self):
        low, high = services.canonical_pair(self.pro, self.client_user)
        existing = Conversation.objects.create(user_low_id=low, user_high_id=high)

        with patch.object(Conversation.objects, "get_or_create", side_effect=IntegrityError("duplicate")):
            resolved = services.get_or_create_conversation(self.client_user, self.pro)

        self.assertEqual(resolved.pk, existing.pk)

    def test_unknown_user(self):
        with self.assertRaises(NotFoundError):
            services.get_or_create_conversation(self.pro, 987654)

    def test_send_and_list_in_insertion_order(self):
        conversation = services.get_or_create_conversation(self.pro, self.client_user)
        services.send_message(conversation.pk, self.client_user, "primero")
        services.send_message(conversation.pk, self.pro, "segundo")
        services.send_message(conversation.pk, self.client_user, "tercero")

        contents = [m.content for m in services.list_messages(conversation.pk, self.pro)]

        self.assertEqual(contents, ["primero", "segundo", "tercero"])

    def test_empty_message_rejected(self):
        conversation = services.get_or_create_conversation(self.pro, self.client_user)

        with self.assertRaises(ValidationError):
            services.send_message(conversation.pk, self.client_user, "   ")

        self.assertFalse(Message.objects.exists())

    def test_non_text_content_rejected(self):
        conversation = services.get_or_create_conversation(self.pro, self.client_user)

        for content in (["hola"], {"text": "hola"}, 42):
            with self.assertRaises(ValidationError):
                services.send_message(conversation.pk, self.client_user, content)

        self.assertFalse(Message.objects.exists())

    def test_outsider_cannot_send_or_read(self):
        conversation = services.get_or_create_conversation(self.pro, self.client_user)

        with self.assertRaises(ForbiddenError):
            services.send_message(conversation.pk, self.outsider, "hola")
        with self.assertRaises(ForbiddenError):
            services.list_messages(conversation.pk, self.outsider)

    def test_mark_read_only_flips_other_sides_messages(self):
        conversation = services.get_or_create_conversation(self.pro, self.client_user)
        services.send_message(conversation.pk, self.client_user, "uno")
        services.send_message(conversation.pk, self.client_user, "dos")
        services.send_message(conversation.pk, self.pro, "respuesta")

        self.assertEqual(services.mark_read(conversation.pk, self.pro), 2)
        self.assertEqual(services.mark_read(conversation.pk, self.pro), 0)
        self.assertFalse(Message.objects.get(content="respuesta").read)

    def test_conversation_list_has_unread_count_and_last_message(self):
        conversation = services.get_or_create_conversation(self.pro, self.client_user)
        services.send_message(conversation.pk, self.client_user, "uno")
        services.send_message(conversation.pk, self.client_user, "dos")

        listed = services.conversations_for(self.pro).get(pk=conversation.pk)

        self.assertEqual(listed.unread_count, 2)
        self.assertEqual(listed.last_message, "dos")
        self.assertEqual(services.conversations_for(self.client_user).get().unread_count, 0)

    def test_send_notifies_recipient(self):
        conversation = services.get_or_create_conversation(self.pro, self.client_user)

        with patch("chat.services.notify_template") as mock_notify:
            services.send_message(conversation.pk, self.client_user, "hola")

        self.assertEqual(mock_notify.call_args.args[1], self.pro)
        self.assertEqual(mock_notify.call_args.kwargs["related_id"], conversation.pk)

    def test_message_is_published_after_commit(self):
        conversation = services.get_or_create_conversation(self.pro, self.client_user)
        layer = InMemoryChannelLayer()

        async def join():
            channel = await layer.new_channel()
            await layer.group_add(conversation_group(conversation.pk), channel)
            return channel

        channel = async_to_sync(join)()
        with patch("chat.services.get_channel_layer", return_value=layer):
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                message = services.send_message(conversation.pk, self.client_user, "hola")

        self.assertEqual(len(callbacks), 1)
        event = async_to_sync(layer.receive)(channel)
        self.assertEqual(event["type"], "chat.message")
        self.assertEqual(event["message"]["id"], message.pk)

    def test_failed_publish_keeps_message(self):
        conversation = services.get_or_create_conversation(self.pro, self.client_user)

        with patch("chat.services.get_channel_layer", side_effect=RuntimeError("layer down")):
            with self.captureOnCommitCallbacks(execute=True):
                message = services.send_message(conversation.pk, self.client_user, "hola")

        self.assertTrue(Message.objects.filter(pk=message.pk).exists())

    @override_settings(FREE_MESSAGE_LIMIT=2)
    def test_free_professional_hits_quota(self):
        conversation = services.get_or_create_conversation(self.pro, self.client_user)
        services.send_message(conversation.pk, self.pro, "uno")
        services.send_message(conversation.pk, self.pro, "dos")

        with self.assertRaises(QuotaExceededError):
            services.send_message(conversation.pk, self.pro, "tres")

        self.assertEqual(Message.objects.filter(sender=self.pro).count(), 2)


class MessageFeedTests(SimpleTestCase):
    def test_duplicates_and_already_rendered_ids_are_dropped(self):
        layer = InMemoryChannelLayer()
        group = conversation_group(1)

        async def scenario():
            received = []
            async with MessageFeed(1, seen_ids={1}, channel_layer=layer) as feed:
                for message_id in (1, 2, 2, 3):
                    await layer.group_send(group, payload(message_id))
                for _ in range(2):
                    received.append(await asyncio.wait_for(feed.__anext__(), timeout=1))
                channel = feed.channel_name
            return received, channel

        received, channel = async_to_sync(scenario)()

        self.assertEqual([event.id for event in received], [2, 3])
        self.assertIsInstance(received[0], MessageEvent)
        self.assertNotIn(channel, layer.groups.get(group, {}))

    def test_close_ends_a_pending_iteration(self):
        layer = InMemoryChannelLayer()

        async def scenario():
            feed = await MessageFeed(5, channel_layer=layer).open()

            async def drain():
                return [event async for event in feed]

            task = asyncio.ensure_future(drain())
            await asyncio.sleep(0)
            await feed.close()
            return await asyncio.wait_for(task, timeout=1), feed

        events, feed = async_to_sync(scenario)()

        self.assertEqual(events, [])
        self.assertFalse(feed.is_open)
        self.assertNotIn(feed.channel_name, layer.groups.get(conversation_group(5), {}))

    def test_non_message_events_are_skipped(self):
        layer = InMemoryChannelLayer()

        async def scenario():
            async with MessageFeed(7, channel_layer=layer) as feed:
                await layer.group_send(conversation_group(7), {"type": "chat.read", "reader": 1})
                await layer.group_send(conversation_group(7), payload(11, conversation_id=7))
                return await asyncio.wait_for(feed.__anext__(), timeout=1)

        event = async_to_sync(scenario)()
        self.assertEqual(event.id, 11)
        self.assertEqual(event.conversation_id, 7)

    def test_subscribe_returns_unopened_feed(self):
        feed = services.subscribe_to_new_messages(3, seen_ids=[1, 2])
        self.assertFalse(feed.is_open)
        self.assertEqual(feed.seen_ids, {1, 2})


class ChatConsumerTests(TestCase):
    def setUp(self):
        self.pro = User.objects.create_user(
            email="pro@example.com", password="pass1234", is_professional=True
        )
        self.client_user = User.objects.create_user(email="cli@example.com", password="pass1234")
        self.conversation = services.get_or_create_conversation(self.pro, self.client_user)

    def _build_consumer(self, acting_user):
        consumer = ChatConsumer()
        consumer.scope = {"user": acting_user}
        consumer.conversation_id = str(self.conversation.pk)
        consumer.group_name = conversation_group(self.conversation.pk)
        consumer.seen_ids = set()
        consumer.channel_layer = InMemoryChannelLayer()
        consumer.send = AsyncMock()
        return consumer

    def test_relayed_duplicates_are_sent_once(self):
        consumer = self._build_consumer(self.client_user)
        event = payload(40, conversation_id=self.conversation.pk)

        async_to_sync(consumer.chat_message)(event)
        async_to_sync(consumer.chat_message)(event)

        consumer.send.assert_awaited_once()
        sent = json.loads(consumer.send.await_args.kwargs["text_data"])
        self.assertEqual(sent["message"]["id"], 40)

    def test_message_frame_stores_message(self):
        consumer = self._build_consumer(self.client_user)

        async_to_sync(consumer.receive)(json.dumps({"type": "message", "content": "hola"}))

        message = Message.objects.get()
        self.assertEqual(message.sender, self.client_user)
        self.assertEqual(message.conversation, self.conversation)

    @override_settings(FREE_MESSAGE_LIMIT=0)
    def test_quota_error_is_reported_to_socket(self):
        consumer = self._build_consumer(self.pro)

        async_to_sync(consumer.receive)(json.dumps({"type": "message", "content": "hola"}))

        self.assertFalse(Message.objects.exists())
        sent = json.loads(consumer.send.await_args.args[0])
        self.assertEqual(sent["error"], "quota_exceeded")

    def test_read_frame_marks_messages(self):
        Message.objects.create(conversation=self.conversation, sender=self.pro, content="uno")
        consumer = self._build_consumer(self.client_user)

        async_to_sync(consumer.receive)(json.dumps({"type": "read"}))

        self.assertTrue(Message.objects.get().read)

    def test_non_object_frames_are_rejected(self):
        consumer = self._build_consumer(self.client_user)

        for frame in ("[1, 2]", "\"hola\"", "7", "null", "{not json"):
            async_to_sync(consumer.receive)(frame)
            self.assertEqual(json.loads(consumer.send.await_args.args[0]), {"error": "invalid_json"})

        self.assertFalse(Message.objects.exists())

    def test_non_text_content_is_reported_to_socket(self):
        consumer = self._build_consumer(self.client_user)

        async_to_sync(consumer.receive)(json.dumps({"type": "message", "content": ["hola"]}))

        sent = json.loads(consumer.send.await_args.args[0])
        self.assertEqual(sent["error"], "invalid_message")
        self.assertFalse(Message.objects.exists())

    def test_message_from_other_side_is_marked_read_on_arrival(self):
        message = Message.objects.create(conversation=self.conversation, sender=self.pro, content="uno")
        consumer = self._build_consumer(self.client_user)
        consumer.channel_layer = AsyncMock()

        async_to_sync(consumer.chat_message)(
            payload(message.pk, conversation_id=self.conversation.pk, sender=self.pro.pk)
        )

        message.refresh_from_db()
        self.assertTrue(message.read)
        consumer.channel_layer.group_send.assert_awaited_once_with(
            consumer.group_name,
            {"type": "chat.read", "reader": self.client_user.pk, "conversation": self.conversation.pk},
        )

    def test_own_relayed_message_does_not_mark_read(self):
        Message.objects.create(conversation=self.conversation, sender=self.pro, content="sin leer")
        own = Message.objects.create(conversation=self.conversation, sender=self.client_user, content="mío")
        consumer = self._build_consumer(self.client_user)
        consumer.channel_layer = AsyncMock()

        async_to_sync(consumer.chat_message)(
            payload(own.pk, conversation_id=self.conversation.pk, sender=self.client_user.pk)
        )

        self.assertTrue(Message.objects.filter(read=False, sender=self.pro).exists())
        consumer.channel_layer.group_send.assert_not_awaited()

    def test_malformed_relay_is_dropped(self):
        consumer = self._build_consumer(self.client_user)

        async_to_sync(consumer.chat_message)({"type": "chat.message", "message": {"id": "x"}})

        consumer.send.assert_not_awaited()

    def test_participant_check(self):
        outsider = User.objects.create_user(email="out@example.com", password="pass1234")
        consumer = self._build_consumer(outsider)

        self.assertFalse(async_to_sync(consumer.is_participant)(self.conversation.pk, outsider))
        self.assertTrue(async_to_sync(consumer.is_participant)(self.conversation.pk, self.pro))


@override_settings(CHANNEL_LAYERS={"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}})
class ChatSocketTests(TestCase):
    """Full websocket round trips through the JWT middleware and URL router."""

    def setUp(self):
        self.pro = User.objects.create_user(
            email="pro@example.com", password="pass1234", is_professional=True
        )
        self.client_user = User.objects.create_user(email="cli@example.com", password="pass1234")
        self.conversation = services.get_or_create_conversation(self.pro, self.client_user)
        self.group = conversation_group(self.conversation.pk)
        self.application = JWTAuthMiddleware(URLRouter(websocket_urlpatterns))

    def communicator(self, user=None):
        path = f"/ws/chat/{self.conversation.pk}/"
        if user is not None:
            path += f"?token={AccessToken.for_user(user)}"
        return WebsocketCommunicator(self.application, path)

    def test_outsider_and_anonymous_are_refused(self):
        outsider = User.objects.create_user(email="out@example.com", password="pass1234")

        async def scenario():
            results = []
            for user in (outsider, None):
                communicator = self.communicator(user)
                connected, _ = await communicator.connect()
                results.append(connected)
                await communicator.disconnect()
            return results

        self.assertEqual(async_to_sync(scenario)(), [False, False])
        self.assertFalse(get_channel_layer().groups.get(self.group))

    def test_nothing_is_delivered_after_disconnect(self):
        async def scenario():
            layer = get_channel_layer()
            communicator = self.communicator(self.pro)
            connected, _ = await communicator.connect()
            members = len(layer.groups.get(self.group, {}))
            await communicator.disconnect()
            await layer.group_send(self.group, payload(99, conversation_id=self.conversation.pk))
            queued = sum(queue.qsize() for queue in layer.channels.values())
            return connected, members, layer.groups.get(self.group), queued

        connected, members, remaining, queued = async_to_sync(scenario)()

        self.assertTrue(connected)
        self.assertEqual(members, 1)
        self.assertFalse(remaining)
        self.assertEqual(queued, 0)

    def test_published_message_arrives_exactly_once(self):
        async def scenario():
            layer = get_channel_layer()
            communicator = self.communicator(self.client_user)
            connected, _ = await communicator.connect()
            message = await database_sync_to_async(Message.objects.create)(
                conversation=self.conversation, sender=self.pro, content="hola"
            )
            event = {"type": MESSAGE_EVENT_TYPE, "message": services.serialize_message(message)}
            # at-least-once delivery may repeat an event
            await layer.group_send(self.group, event)
            await layer.group_send(self.group, event)
            frames = [await communicator.receive_json_from(timeout=1) for _ in range(2)]
            silent = await communicator.receive_nothing(timeout=0.2)
            await communicator.disconnect()
            return connected, message, frames, silent

        connected, message, frames, silent = async_to_sync(scenario)()

        self.assertTrue(connected)
        self.assertEqual(frames[0]["type"], "message")
        self.assertEqual(frames[0]["message"]["id"], message.pk)
        self.assertEqual(
            frames[1],
            {"type": "read", "reader": self.client_user.pk, "conversation": self.conversation.pk},
        )
        self.assertTrue(silent)
        message.refresh_from_db()
        self.assertTrue(message.read)

    def test_opening_the_socket_marks_conversation_read(self):
        Message.objects.create(conversation=self.conversation, sender=self.pro, content="uno")
        Message.objects.create(conversation=self.conversation, sender=self.client_user, content="dos")

        async def scenario():
            communicator = self.communicator(self.client_user)
            await communicator.connect()
            frame = await communicator.receive_json_from(timeout=1)
            await communicator.disconnect()
            return frame

        frame = async_to_sync(scenario)()

        self.assertEqual(frame["reader"], self.client_user.pk)
        self.assertFalse(Message.objects.filter(sender=self.pro, read=False).exists())
        self.assertFalse(Message.objects.get(sender=self.client_user).read)


class ChatAPITests(APITestCase):
    def setUp(self):
        self.pro = User.objects.create_user(
            email="pro@example.com", password="pass1234", is_professional=True
        )
        self.client_user = User.objects.create_user(email="cli@example.com", password="pass1234")
        self.client.force_authenticate(self.client_user)

    def test_resolve_then_send_and_list(self):
        resolved = self.client.post(
            "/chat/conversations/resolve/", {"other_user_id": self.pro.pk}, format="json"
        )
        self.assertEqual(resolved.status_code, 200)
        conversation_id = resolved.data["conversation_id"]

        again = self.client.post(
            "/chat/conversations/resolve/", {"other_user_id": self.pro.pk}, format="json"
        )
        self.assertEqual(again.data["conversation_id"], conversation_id)

        sent = self.client.post(
            f"/chat/conversations/{conversation_id}/messages/", {"content": "hola"}, format="json"
        )
        self.assertEqual(sent.status_code, 201)
        self.assertFalse(sent.data["read"])

        listed = self.client.get(f"/chat/conversations/{conversation_id}/messages/")
        self.assertEqual([m["content"] for m in listed.data], ["hola"])

    def test_resolve_with_self_is_rejected(self):
        response = self.client.post(
            "/chat/conversations/resolve/", {"other_user_id": self.client_user.pk}, format="json"
        )
        self.assertEqual(response.status_code, 400)

    @override_settings(FREE_MESSAGE_LIMIT=1)
    def test_quota_returns_payment_required(self):
        conversation = services.get_or_create_conversation(self.pro, self.client_user)
        self.client.force_authenticate(self.pro)
        url = f"/chat/conversations/{conversation.pk}/messages/"

        self.assertEqual(self.client.post(url, {"content": "uno"}, format="json").status_code, 201)
        self.assertEqual(self.client.post(url, {"content": "dos"}, format="json").status_code, 402)

        quota = self.client.get(f"/chat/conversations/{conversation.pk}/quota/")
        self.assertEqual(quota.data, {"limit": 1, "used": 1, "remaining": 0})

    def test_conversation_list_shows_unread(self):
        conversation = services.get_or_create_conversation(self.pro, self.client_user)
        services.send_message(conversation.pk, self.pro, "hola")

        response = self.client.get("/chat/conversations/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data[0]["unread_count"], 1)
        self.assertEqual(response.data[0]["other_user"]["id"], self.pro.pk)

        self.client.post(f"/chat/conversations/{conversation.pk}/read/")
        self.assertEqual(self.client.get("/chat/conversations/").data[0]["unread_count"], 0)
