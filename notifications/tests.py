import json
from unittest.mock import AsyncMock, patch

from asgiref.sync import async_to_sync
from channels.layers import InMemoryChannelLayer
from django.test import TestCase
from rest_framework.test import APITestCase

from notifications.consumers import NotificationConsumer, user_group
from notifications.dispatcher import notify, notify_template, render
from notifications.models import Notification, NotificationFailure
from notifications.tasks import deliver_notification_task
from users.models import User


class NotificationDispatcherTests(TestCase):
    def setUp(self):
        self.recipient = User.objects.create_user(
            email="pro@example.com", password="secret", full_name="Ana Pro", is_professional=True
        )
        self.sender = User.objects.create_user(
            email="client@example.com", password="secret", full_name="Carlos Cliente"
        )

    def test_notify_stores_notification_for_recipient(self):
        delivered = notify(
            Notification.Type.SOLICITUD_ENVIADA,
            self.recipient.pk,
            self.sender.pk,
            "Nueva solicitud",
            "Hola",
            42,
            related_type="hire",
        )

        self.assertTrue(delivered)
        notification = Notification.objects.get(user=self.recipient)
        self.assertEqual(notification.sender, self.sender)
        self.assertEqual(notification.type, Notification.Type.SOLICITUD_ENVIADA)
        self.assertEqual(notification.related_id, "42")
        self.assertEqual(notification.related_type, "hire")
        self.assertEqual(notification.status, Notification.Status.UNREAD)

    def test_enqueue_failure_is_recorded_not_raised(self):
        with patch(
            "notifications.dispatcher.deliver_notification_task.delay",
            side_effect=RuntimeError("broker down"),
        ):
            delivered = notify(
                Notification.Type.GENERAL, self.recipient.pk, None, "t", "m"
            )

        self.assertFalse(delivered)
        self.assertFalse(Notification.objects.exists())
        failure = NotificationFailure.objects.get()
        self.assertEqual(failure.type, Notification.Type.GENERAL)
        self.assertEqual(failure.recipient_id, str(self.recipient.pk))
        self.assertIn("broker down", failure.error)

    def test_task_records_missing_recipient(self):
        result = deliver_notification_task({
            "type": Notification.Type.GENERAL,
            "recipient_id": 999999,
            "sender_id": None,
            "title": "t",
            "message": "m",
        })

        self.assertIsNone(result)
        self.assertEqual(NotificationFailure.objects.count(), 1)
        self.assertFalse(Notification.objects.exists())

    def test_stored_notification_is_pushed_to_user_group(self):
        layer = InMemoryChannelLayer()

        async def scenario():
            channel = await layer.new_channel()
            await layer.group_add(f"notifications_{self.recipient.pk}", channel)
            return channel

        channel = async_to_sync(scenario)()
        with patch("notifications.tasks.get_channel_layer", return_value=layer):
            notify_template(Notification.Type.NUEVA_RESENA, self.recipient, self.sender, subject="5")

        event = async_to_sync(layer.receive)(channel)
        self.assertEqual(event["type"], "send_notification")
        self.assertEqual(event["message"]["title"], "Nueva reseña de Carlos Cliente")

    def test_render_uses_sender_name(self):
        title, message = render(Notification.Type.SOLICITUD_ACEPTADA, "Ana Pro")
        self.assertEqual(title, "Ana Pro aceptó tu solicitud")
        self.assertIn("Ana Pro", message)

    def test_render_falls_back_for_types_without_copy(self):
        title, message = render(Notification.Type.CONTACTO_COMPARTIDO, "Ana Pro", subject="plomería")
        self.assertEqual(title, "Novedades de Ana Pro")
        self.assertEqual(message, "Ana Pro tiene novedades sobre plomería.")

    def test_notify_template_without_recipient_is_noop(self):
        self.assertFalse(notify_template(Notification.Type.GENERAL, None, self.sender))
        self.assertFalse(Notification.objects.exists())


class NotificationAPITests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="user@example.com", password="secret")
        self.other_user = User.objects.create_user(email="other@example.com", password="secret")

        Notification.objects.create(user=self.user, title="Mensaje 1", message="texto")
        Notification.objects.create(user=self.other_user, title="Mensaje 2", message="texto")

        self.client.force_authenticate(user=self.user)

    def test_list_notifications_returns_only_current_user(self):
        response = self.client.get("/notifications/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["title"], "Mensaje 1")
        self.assertEqual(response.data[0]["status"], Notification.Status.UNREAD)

    def test_mark_read_updates_status(self):
        notification = Notification.objects.create(user=self.user, title="Leer", message="texto")

        response = self.client.patch(f"/notifications/{notification.id}/mark-read/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], Notification.Status.READ)
        notification.refresh_from_db()
        self.assertEqual(notification.status, Notification.Status.READ)

    def test_cannot_mark_someone_elses_notification(self):
        foreign = Notification.objects.get(user=self.other_user)

        response = self.client.patch(f"/notifications/{foreign.id}/mark-read/")

        self.assertEqual(response.status_code, 404)

    def test_mark_all_read_and_unread_count(self):
        Notification.objects.create(user=self.user, title="Otro", message="texto")

        self.assertEqual(self.client.get("/notifications/unread-count/").data["unread"], 2)
        response = self.client.post("/notifications/mark-all-read/")

        self.assertEqual(response.data["updated"], 2)
        self.assertEqual(self.client.get("/notifications/unread-count/").data["unread"], 0)


class NotificationConsumerTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="user@example.com", password="secret")
        self.first = Notification.objects.create(user=self.user, title="Uno", message="texto")
        self.second = Notification.objects.create(user=self.user, title="Dos", message="texto")

    def _build_consumer(self):
        consumer = NotificationConsumer()
        consumer.scope = {"user": self.user}
        consumer.group_name = user_group(self.user.pk)
        consumer.channel_layer = InMemoryChannelLayer()
        consumer.send = AsyncMock()
        return consumer

    def _last_frame(self, consumer):
        call = consumer.send.await_args
        return json.loads(call.kwargs.get("text_data") or call.args[0])

    def test_read_frame_marks_one_and_reports_count(self):
        consumer = self._build_consumer()

        async_to_sync(consumer.receive)(json.dumps({"type": "read", "id": self.first.pk}))

        self.first.refresh_from_db()
        self.second.refresh_from_db()
        self.assertEqual(self.first.status, Notification.Status.READ)
        self.assertEqual(self.second.status, Notification.Status.UNREAD)
        self.assertEqual(self._last_frame(consumer), {"type": "unread_count", "unread": 1})

    def test_read_frame_without_id_marks_all(self):
        consumer = self._build_consumer()

        async_to_sync(consumer.receive)(json.dumps({"type": "read"}))

        self.assertFalse(Notification.objects.filter(status=Notification.Status.UNREAD).exists())

    def test_pushed_notification_is_wrapped(self):
        consumer = self._build_consumer()

        async_to_sync(consumer.send_notification)({"type": "send_notification", "message": {"id": 7}})

        self.assertEqual(self._last_frame(consumer), {"type": "notification", "notification": {"id": 7}})

    def test_non_object_frames_are_rejected(self):
        consumer = self._build_consumer()

        for frame in ("[1, 2]", "\"read\"", "42", "null"):
            async_to_sync(consumer.receive)(frame)
            self.assertEqual(self._last_frame(consumer), {"error": "invalid_json"})

        self.assertEqual(Notification.objects.filter(status=Notification.Status.UNREAD).count(), 2)
