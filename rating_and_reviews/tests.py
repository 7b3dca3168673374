from decimal import Decimal
from unittest.mock import patch

from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework.test import APITestCase

from common.choices import HireStatus
from common.exceptions import (
    AlreadyReviewedError,
    DuplicateReviewError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
)
from hires.models import Hire
from hires.services import HireLifecycleManager
from notifications.models import Notification
from professional_profile.models import Professional
from users.models import User

from . import services
from .models import ClientReview, Review


class ReviewFixtureMixin:
    def setUp(self):
        self.manager = HireLifecycleManager()
        self.client_user = User.objects.create_user(
            email="ana@example.com", password="secret", full_name="Ana Cliente"
        )
        pro_user = User.objects.create_user(
            email="pro@example.com", password="secret", full_name="Bruno", is_professional=True
        )
        self.professional = Professional.objects.create(user=pro_user, display_name="Bruno")
        self.pro_user = pro_user

    def completed_hire(self):
        hire = self.manager.create_proposal(self.client_user, self.professional, "Pintar")
        self.manager.respond_to_proposal(hire.pk, True, self.pro_user)
        return self.manager.complete_engagement(hire.pk, self.pro_user)


class EndToEndReviewTests(ReviewFixtureMixin, TestCase):
    def test_propose_accept_complete_review_then_duplicate(self):
        hire = self.manager.create_proposal(self.client_user, self.professional, "Pintar")
        hire = self.manager.respond_to_proposal(hire.pk, True, self.pro_user)
        self.assertEqual(hire.status, HireStatus.IN_PROGRESS)
        self.assertIsNotNone(hire.started_at)
        self.assertIsNone(services.is_reviewable(self.client_user, self.professional))

        hire = self.manager.complete_engagement(hire.pk, self.pro_user)
        self.assertEqual(hire.status, HireStatus.COMPLETED)
        self.assertIsNotNone(hire.completed_at)
        self.assertEqual(services.is_reviewable(self.client_user, self.professional), hire)

        review = services.submit_review(hire.pk, self.client_user, 5, "Excelente", Decimal("1500"))
        self.assertTrue(Review.objects.filter(pk=review.pk, hire=hire).exists())
        self.assertIsNone(services.is_reviewable(self.client_user, self.professional))

        with self.assertRaises(DuplicateReviewError):
            services.submit_review(hire.pk, self.client_user, 4, "otra vez")
        self.assertEqual(Review.objects.count(), 1)

    def test_review_updates_professional_rating(self):
        services.submit_review(self.completed_hire().pk, self.client_user, 5)
        services.submit_review(self.completed_hire().pk, self.client_user, 4)

        self.professional.refresh_from_db()
        self.assertEqual(self.professional.rating, Decimal("4.50"))
        self.assertEqual(self.professional.rating_count, 2)

    def test_review_notifies_professional(self):
        hire = self.completed_hire()

        services.submit_review(hire.pk, self.client_user, 5)

        notification = Notification.objects.get(type=Notification.Type.NUEVA_RESENA)
        self.assertEqual(notification.user, self.pro_user)

    def test_uncompleted_hire_cannot_be_reviewed(self):
        hire = self.manager.create_proposal(self.client_user, self.professional)

        with self.assertRaises(InvalidTransitionError):
            services.submit_review(hire.pk, self.client_user, 5)

    def test_only_the_client_can_review(self):
        hire = self.completed_hire()

        with self.assertRaises(ForbiddenError):
            services.submit_review(hire.pk, self.pro_user, 5)

    def test_rating_must_be_in_range(self):
        hire = self.completed_hire()

        for bad in (0, 6, "x", 4.5):
            with self.assertRaises(ValidationError):
                services.submit_review(hire.pk, self.client_user, bad)
        self.assertFalse(Review.objects.exists())

    def test_professional_rates_client_once(self):
        hire = self.completed_hire()

        client_review = services.submit_client_review(hire.pk, self.pro_user, 4, "Puntual")
        self.assertEqual(client_review.client, self.client_user)

        with self.assertRaises(DuplicateReviewError):
            services.submit_client_review(hire.pk, self.pro_user, 5)
        self.assertEqual(ClientReview.objects.count(), 1)

    def test_client_cannot_write_client_review(self):
        hire = self.completed_hire()

        with self.assertRaises(ForbiddenError):
            services.submit_client_review(hire.pk, self.client_user, 4)


class GuestReviewTests(ReviewFixtureMixin, TestCase):
    def guest_hire(self, **extra):
        values = {
            "professional": self.professional,
            "guest_client_name": "Invitado",
            "review_token": "abc123",
        }
        values.update(extra)
        return Hire.objects.create(**values)

    def test_guest_token_flow(self):
        hire = self.guest_hire()
        self.assertFalse(hire.reviewed_by_guest)

        self.assertEqual(services.fetch_hire_by_token("abc123").pk, hire.pk)
        review = services.submit_guest_review("abc123", 5, "great job")

        self.assertTrue(review.is_guest_review)
        self.assertEqual(review.guest_reviewer_name, "Invitado")
        hire.refresh_from_db()
        self.assertTrue(hire.reviewed_by_guest)
        self.assertEqual(hire.status, HireStatus.COMPLETED)
        self.assertIsNotNone(hire.completed_at)

        with self.assertRaises(AlreadyReviewedError):
            services.fetch_hire_by_token("abc123")
        with self.assertRaises(AlreadyReviewedError):
            services.submit_guest_review("abc123", 4, "again")
        self.assertEqual(Review.objects.count(), 1)

    def test_guest_review_of_hire_already_completed(self):
        hire = self.guest_hire(status=HireStatus.COMPLETED)

        services.submit_guest_review("abc123", 4)

        hire.refresh_from_db()
        self.assertTrue(hire.reviewed_by_guest)
        self.assertEqual(hire.status, HireStatus.COMPLETED)

    def test_unknown_token(self):
        with self.assertRaises(NotFoundError):
            services.fetch_hire_by_token("nope")

    def test_registered_client_hire_token_is_not_a_guest_link(self):
        hire = self.manager.create_proposal(self.client_user, self.professional)

        with self.assertRaises(NotFoundError):
            services.fetch_hire_by_token(hire.review_token)

    def test_cancelled_guest_hire_cannot_be_reviewed(self):
        self.guest_hire(status=HireStatus.CANCELLED)

        with self.assertRaises(InvalidTransitionError):
            services.submit_guest_review("abc123", 5)

    def test_failed_hire_update_rolls_back_review(self):
        self.guest_hire()

        with patch.object(
            HireLifecycleManager, "complete_for_guest_review",
            side_effect=InvalidTransitionError(),
        ):
            with self.assertRaises(InvalidTransitionError):
                services.submit_guest_review("abc123", 5)

        self.assertFalse(Review.objects.exists())


class ReviewAPITests(ReviewFixtureMixin, APITestCase):
    def test_create_and_list_reviews(self):
        hire = self.completed_hire()
        self.client.force_authenticate(self.client_user)

        created = self.client.post("/reviews/", {"hire": hire.pk, "rating": 5, "comment": "Bien"}, format="json")
        self.assertEqual(created.status_code, 201)

        duplicate = self.client.post("/reviews/", {"hire": hire.pk, "rating": 5}, format="json")
        self.assertEqual(duplicate.status_code, 409)

        self.client.force_authenticate(None)
        listed = self.client.get("/reviews/", {"professional": self.professional.pk})
        self.assertEqual(listed.status_code, 200)
        self.assertEqual(len(listed.data), 1)

    def test_out_of_range_rating_is_bad_request(self):
        hire = self.completed_hire()
        self.client.force_authenticate(self.client_user)

        response = self.client.post("/reviews/", {"hire": hire.pk, "rating": 9}, format="json")

        self.assertEqual(response.status_code, 400)

    def test_reviewable_endpoint(self):
        hire = self.completed_hire()
        self.client.force_authenticate(self.client_user)

        response = self.client.get(f"/reviews/reviewable/{self.professional.pk}/")

        self.assertEqual(response.data, {"hire_id": hire.pk})

    def test_guest_link_without_login(self):
        Hire.objects.create(professional=self.professional, guest_client_name="Invitado", review_token="tok-1")

        preview = self.client.get("/reviews/guest/tok-1/")
        self.assertEqual(preview.status_code, 200)
        self.assertNotIn("review_token", preview.data)

        submitted = self.client.post("/reviews/guest/tok-1/", {"rating": 5, "comment": "great job"}, format="json")
        self.assertEqual(submitted.status_code, 201)

        again = self.client.post("/reviews/guest/tok-1/", {"rating": 5}, format="json")
        self.assertEqual(again.status_code, 410)
        self.assertEqual(self.client.get("/reviews/guest/missing/").status_code, 404)
