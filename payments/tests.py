from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock, patch

import requests
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from chat.models import Conversation, Message
from common.choices import SubscriptionStatus, SubscriptionType
from common.exceptions import QuotaExceededError
from payments import services
from payments.models import Payment
from professional_profile.models import Professional
from users.models import User


def approved_payment(payment_id, user_id, status_value="approved"):
    return {
        "id": payment_id,
        "status": status_value,
        "external_reference": str(user_id),
        "transaction_amount": 20,
        "currency_id": "UYU",
    }


class EntitlementTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.user = User.objects.create_user(email="pro@example.com", password="secret", is_professional=True)

    def _set(self, type_, status_, end):
        self.user.subscription_type = type_
        self.user.subscription_status = status_
        self.user.subscription_end_date = end

    def test_active_premium_within_period(self):
        self._set(SubscriptionType.PREMIUM, SubscriptionStatus.ACTIVE, self.now + timedelta(days=3))
        self.assertTrue(services.is_entitled(self.user, now=self.now))

    def test_cancelled_keeps_entitlement_until_end_date(self):
        self._set(SubscriptionType.PREMIUM, SubscriptionStatus.CANCELLED, self.now + timedelta(days=3))
        self.assertTrue(services.is_entitled(self.user, now=self.now))

    def test_expired_is_not_entitled_regardless_of_status(self):
        for status_ in (SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED):
            self._set(SubscriptionType.PREMIUM, status_, self.now - timedelta(seconds=1))
            self.assertFalse(services.is_entitled(self.user, now=self.now))

    def test_free_or_missing_end_date_is_not_entitled(self):
        self._set(SubscriptionType.FREE, SubscriptionStatus.ACTIVE, self.now + timedelta(days=3))
        self.assertFalse(services.is_entitled(self.user, now=self.now))
        self._set(SubscriptionType.PREMIUM, SubscriptionStatus.ACTIVE, None)
        self.assertFalse(services.is_entitled(self.user, now=self.now))

    def test_inactive_status_is_not_entitled(self):
        self._set(SubscriptionType.PREMIUM, SubscriptionStatus.INACTIVE, self.now + timedelta(days=3))
        self.assertFalse(services.is_entitled(self.user, now=self.now))


@override_settings(SUBSCRIPTION_PERIOD_DAYS=30)
class ActivationTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="pro@example.com", password="secret", is_professional=True)
        self.professional = Professional.objects.create(user=self.user, display_name="Pro")

    def test_activation_sets_period_and_mirrors_professional(self):
        now = timezone.now()

        services.activate_subscription(self.user, now=now)

        self.assertEqual(self.user.subscription_type, SubscriptionType.PREMIUM)
        self.assertEqual(self.user.subscription_status, SubscriptionStatus.ACTIVE)
        self.assertEqual(self.user.subscription_start_date, now)
        self.assertEqual(self.user.subscription_end_date, now + timedelta(days=30))
        self.professional.refresh_from_db()
        self.assertTrue(self.professional.is_premium)
        self.assertEqual(self.professional.subscription_end_date, now + timedelta(days=30))
        self.assertTrue(self.professional.has_premium_visibility)


@override_settings(FREE_MESSAGE_LIMIT=3)
class MessageQuotaTests(TestCase):
    def setUp(self):
        self.pro = User.objects.create_user(email="pro@example.com", password="secret", is_professional=True)
        self.client_user = User.objects.create_user(email="cli@example.com", password="secret")
        low, high = sorted([self.pro, self.client_user], key=lambda u: u.pk)
        self.conversation = Conversation.objects.create(user_low=low, user_high=high)

    def _send(self, sender, count):
        for i in range(count):
            Message.objects.create(conversation=self.conversation, sender=sender, content=f"m{i}")

    def test_free_professional_is_limited(self):
        self._send(self.pro, 2)
        quota = services.message_quota(self.pro, self.conversation)
        self.assertEqual(quota.as_dict(), {"limit": 3, "used": 2, "remaining": 1})

        self._send(self.pro, 1)
        with self.assertRaises(QuotaExceededError):
            services.check_message_quota(self.pro, self.conversation)

    def test_clients_are_never_limited(self):
        self._send(self.client_user, 5)
        quota = services.check_message_quota(self.client_user, self.conversation)
        self.assertIsNone(quota.limit)
        self.assertEqual(quota.used, 5)

    def test_entitled_professional_is_unlimited(self):
        services.activate_subscription(self.pro)
        self._send(self.pro, 5)
        self.assertFalse(services.check_message_quota(self.pro, self.conversation).exhausted)


class CancelSubscriptionAPITests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="pro@example.com", password="secret", is_professional=True)
        self.client.force_authenticate(self.user)
        self.url = reverse("payments:subscription-cancel")

    def test_cancel_keeps_end_date_and_entitlement(self):
        services.activate_subscription(self.user)
        end = self.user.subscription_end_date

        response = self.client.post(self.url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("message", response.data)
        self.user.refresh_from_db()
        self.assertEqual(self.user.subscription_status, SubscriptionStatus.CANCELLED)
        self.assertEqual(self.user.subscription_end_date, end)
        self.assertTrue(services.is_entitled(self.user))

    def test_cancel_without_subscription_returns_error(self):
        response = self.client.post(self.url)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("error", response.data)


@override_settings(
    MERCADOPAGO_ACCESS_TOKEN="TEST-token",
    MERCADOPAGO_WEBHOOK_URL="https://api.example.com/payments/webhook/",
    SUBSCRIPTION_DEFAULT_CURRENCY="UYU",
    SUBSCRIPTION_DEFAULT_AMOUNT=20,
)
class CreatePreferenceAPITests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="pro@example.com", password="secret", is_professional=True)
        self.client.force_authenticate(self.user)
        self.url = reverse("payments:subscription-preference")

    @patch("payments.utils.requests.post")
    def test_returns_init_point(self, mock_post):
        mock_post.return_value = Mock(
            status_code=201,
            json=Mock(return_value={"id": "pref-1", "init_point": "https://mp.example/checkout/pref-1"}),
            raise_for_status=Mock(),
        )

        response = self.client.post(self.url, {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {"initPoint": "https://mp.example/checkout/pref-1"})
        payload = mock_post.call_args.kwargs["json"]
        self.assertEqual(payload["external_reference"], str(self.user.pk))
        self.assertEqual(payload["items"][0]["currency_id"], "UYU")
        self.assertEqual(payload["items"][0]["unit_price"], 20.0)
        self.assertEqual(payload["notification_url"], "https://api.example.com/payments/webhook/")
        headers = mock_post.call_args.kwargs["headers"]
        self.assertEqual(headers["Authorization"], "Bearer TEST-token")

    @patch("payments.utils.requests.post", side_effect=requests.ConnectionError("down"))
    def test_provider_outage_returns_503(self, mock_post):
        response = self.client.post(self.url, {"currency": "usd", "amount": "5.00"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)


@override_settings(MERCADOPAGO_ACCESS_TOKEN="TEST-token", SUBSCRIPTION_PERIOD_DAYS=30)
class MercadoPagoWebhookTests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="pro@example.com", password="secret", is_professional=True)
        self.professional = Professional.objects.create(user=self.user)
        self.url = reverse("payments:mercadopago-webhook")

    def _notify(self, payment_id="123"):
        return self.client.post(self.url, {"type": "payment", "data": {"id": payment_id}}, format="json")

    @patch("payments.utils.fetch_payment")
    def test_approved_payment_activates_subscription(self, mock_fetch):
        mock_fetch.return_value = approved_payment(123, self.user.pk)

        response = self._notify()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        mock_fetch.assert_called_once_with("123")
        self.user.refresh_from_db()
        self.assertEqual(self.user.subscription_type, SubscriptionType.PREMIUM)
        self.assertEqual(self.user.subscription_status, SubscriptionStatus.ACTIVE)
        payment = Payment.objects.get(provider_payment_id="123")
        self.assertEqual(payment.status, Payment.Status.APPROVED)
        self.assertEqual(payment.user, self.user)
        self.assertEqual(payment.amount, Decimal("20"))

    @patch("payments.utils.fetch_payment")
    def test_redelivery_is_a_no_op(self, mock_fetch):
        mock_fetch.return_value = approved_payment(123, self.user.pk)
        self._notify()
        self.user.refresh_from_db()
        first_end = self.user.subscription_end_date

        response = self._notify()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["duplicate"])
        self.user.refresh_from_db()
        self.assertEqual(self.user.subscription_end_date, first_end)
        self.assertEqual(Payment.objects.count(), 1)

    @patch("payments.utils.fetch_payment")
    def test_pending_payment_changes_nothing(self, mock_fetch):
        mock_fetch.return_value = approved_payment(124, self.user.pk, status_value="in_process")

        response = self._notify("124")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.subscription_type, SubscriptionType.FREE)
        self.assertEqual(Payment.objects.get().status, Payment.Status.PENDING)

    @patch("payments.utils.fetch_payment")
    def test_pending_then_approved_applies_once(self, mock_fetch):
        mock_fetch.return_value = approved_payment(125, self.user.pk, status_value="pending")
        self._notify("125")
        mock_fetch.return_value = approved_payment(125, self.user.pk)

        self._notify("125")

        self.user.refresh_from_db()
        self.assertEqual(self.user.subscription_status, SubscriptionStatus.ACTIVE)

    @patch("payments.utils.fetch_payment")
    def test_non_payment_events_are_ignored(self, mock_fetch):
        response = self.client.post(self.url, {"type": "plan", "data": {"id": "9"}}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        mock_fetch.assert_not_called()

    def test_missing_payment_id_is_rejected(self):
        response = self.client.post(self.url, {"type": "payment", "data": {}}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @patch("payments.utils.requests.get", side_effect=requests.Timeout("slow"))
    def test_provider_outage_asks_for_redelivery(self, mock_get):
        response = self._notify()

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertFalse(Payment.objects.exists())
