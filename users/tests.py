from datetime import timedelta

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from common.choices import SubscriptionStatus, SubscriptionType
from professional_profile.models import Professional
from users.models import User
from users.session import SessionManager


class UserManagerTestCase(TestCase):

    def test_email_is_normalized(self):
        user = User.objects.create_user(email='Ana@Example.COM', password='secret')
        self.assertEqual(user.email, 'ana@example.com')

    def test_email_exists_ignores_case_and_spaces(self):
        User.objects.create_user(email='ana@example.com', password='secret')

        self.assertTrue(User.objects.email_exists('  ANA@example.com '))
        self.assertFalse(User.objects.email_exists('otra@example.com'))
        self.assertFalse(User.objects.email_exists(''))


class SessionManagerTestCase(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(
            email='pro@example.com', password='secret', is_professional=True
        )
        self.professional = Professional.objects.create(user=self.user, display_name='Pro')

    def test_refresh_picks_up_new_subscription_state(self):
        manager = SessionManager(self.user.pk)
        snapshot = manager.refresh()
        self.assertFalse(snapshot.is_entitled)
        self.assertEqual(snapshot.professional, self.professional)

        User.objects.filter(pk=self.user.pk).update(
            subscription_type=SubscriptionType.PREMIUM,
            subscription_status=SubscriptionStatus.ACTIVE,
            subscription_end_date=timezone.now() + timedelta(days=5),
        )
        # a snapshot keeps what it fetched
        self.assertFalse(snapshot.is_entitled)
        self.assertTrue(manager.refresh().is_entitled)


class UserAPITestCase(APITestCase):

    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(
            email='ana@example.com', password='StrongPass123', full_name='Ana'
        )

    # ================= Register =================
    def test_register_client(self):
        data = {'email': 'nuevo@example.com', 'password': 'StrongPass123', 'full_name': 'Nuevo'}

        response = self.client.post('/users/register/', data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data['tokens'])
        self.assertTrue(User.objects.filter(email='nuevo@example.com').exists())
        self.assertFalse(Professional.objects.exists())

    def test_register_professional_creates_profile(self):
        data = {
            'email': 'pro@example.com',
            'password': 'StrongPass123',
            'full_name': 'Bruno',
            'is_professional': True,
            'profession': 'electricista',
        }

        response = self.client.post('/users/register/', data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        professional = Professional.objects.get(user__email='pro@example.com')
        self.assertEqual(professional.profession, 'electricista')

    def test_register_duplicate_email(self):
        data = {'email': 'ANA@example.com', 'password': 'StrongPass123'}

        response = self.client.post('/users/register/', data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    # ================= Login JWT =================
    def test_login_user(self):
        response = self.client.post('/users/login/', {
            'email': 'ana@example.com',
            'password': 'StrongPass123'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    # ================= Me =================
    def test_me_returns_session_snapshot(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get('/users/me/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['email'], 'ana@example.com')
        self.assertFalse(response.data['is_entitled'])
        self.assertIsNone(response.data['professional_id'])

    def test_me_patch_updates_contact_fields_only(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.patch(
            '/users/me/', {'phone': '099123456', 'subscription_type': 'premium'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.phone, '099123456')
        self.assertEqual(self.user.subscription_type, SubscriptionType.FREE)

    def test_me_requires_authentication(self):
        response = self.client.get('/users/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    # ================= Email exists =================
    def test_email_exists(self):
        found = self.client.post('/users/email-exists/', {'email_input': 'ana@example.com'}, format='json')
        missing = self.client.post('/users/email-exists/', {'email_input': 'x@example.com'}, format='json')

        self.assertEqual(found.data, {'exists': True})
        self.assertEqual(missing.data, {'exists': False})
