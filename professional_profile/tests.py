from datetime import timedelta
from decimal import Decimal

from django.utils import timezone
from rest_framework.test import APITestCase

from professional_profile.models import Professional
from users.models import User


def make_professional(email, **extra):
    user = User.objects.create_user(email=email, password="secret", is_professional=True)
    return Professional.objects.create(user=user, display_name=email.split("@")[0], **extra)


class ProfessionalListingTests(APITestCase):
    def setUp(self):
        now = timezone.now()
        self.top_rated = make_professional("top@example.com", profession="plomero", rating=Decimal("4.90"))
        self.premium = make_professional(
            "premium@example.com",
            profession="plomero",
            rating=Decimal("3.00"),
            is_premium=True,
            subscription_end_date=now + timedelta(days=10),
        )
        self.lapsed = make_professional(
            "lapsed@example.com",
            profession="electricista",
            rating=Decimal("4.00"),
            is_premium=True,
            subscription_end_date=now - timedelta(days=1),
        )
        make_professional("hidden@example.com", is_active=False)

    def test_premium_first_then_rating(self):
        response = self.client.get("/professionals/")

        self.assertEqual(response.status_code, 200)
        ids = [row["id"] for row in response.data]
        self.assertEqual(ids, [self.premium.pk, self.top_rated.pk, self.lapsed.pk])
        self.assertTrue(response.data[0]["is_premium"])
        self.assertFalse(response.data[2]["is_premium"])

    def test_filter_by_profession(self):
        response = self.client.get("/professionals/", {"profession": "Electricista"})

        self.assertEqual([row["id"] for row in response.data], [self.lapsed.pk])

    def test_inactive_profile_is_not_found(self):
        hidden = Professional.objects.get(user__email="hidden@example.com")

        self.assertEqual(self.client.get(f"/professionals/{hidden.pk}/").status_code, 404)
