from unittest.mock import patch

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APITestCase

from common.choices import HireStatus
from common.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
)
from hires.models import Hire
from hires.services import HireLifecycleManager
from hires.transitions import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    can_transition,
    check_transition,
    is_terminal,
)
from notifications.models import Notification
from professional_profile.models import Professional
from users.models import User


def make_professional(email="pro@example.com", **extra):
    user = User.objects.create_user(
        email=email, password="secret", full_name="Bruno Plomero", is_professional=True
    )
    return Professional.objects.create(user=user, display_name="Bruno", profession="plomero", **extra)


class TransitionTableTests(SimpleTestCase):
    def test_terminal_statuses_have_no_exits(self):
        for status in TERMINAL_STATUSES:
            self.assertEqual(TRANSITIONS[status], frozenset())

    def test_pending_cannot_jump_to_completed(self):
        self.assertFalse(can_transition(HireStatus.PENDING, HireStatus.COMPLETED))
        with self.assertRaises(InvalidTransitionError):
            check_transition(HireStatus.PENDING, HireStatus.COMPLETED)

    def test_waiting_approval_can_go_back_to_in_progress(self):
        self.assertTrue(can_transition(HireStatus.WAITING_CLIENT_APPROVAL, HireStatus.IN_PROGRESS))

    def test_guest_review_shortcut_only_from_active_statuses(self):
        self.assertTrue(can_transition(HireStatus.PENDING, HireStatus.COMPLETED, guest_review=True))
        self.assertFalse(can_transition(HireStatus.CANCELLED, HireStatus.COMPLETED, guest_review=True))
        self.assertTrue(can_transition(HireStatus.PENDING, HireStatus.CANCELLED, guest_review=True))

    def test_every_status_is_in_the_table(self):
        self.assertEqual(set(TRANSITIONS), set(HireStatus.values))

    def test_terminal_statuses_allow_no_move(self):
        self.assertTrue(is_terminal(HireStatus.REJECTED))
        self.assertFalse(is_terminal(HireStatus.WAITING_CLIENT_APPROVAL))
        self.assertFalse(can_transition(HireStatus.COMPLETED, HireStatus.COMPLETED))


class HireLifecycleTests(TestCase):
    def setUp(self):
        self.manager = HireLifecycleManager()
        self.client_user = User.objects.create_user(
            email="ana@example.com", password="secret", full_name="Ana Cliente"
        )
        self.professional = make_professional()
        self.pro_user = self.professional.user

    def test_proposal_accept_complete_flow(self):
        hire = self.manager.create_proposal(self.client_user, self.professional, "Arreglar canilla")
        self.assertEqual(hire.status, HireStatus.PENDING)
        self.assertTrue(hire.review_token)

        hire = self.manager.respond_to_proposal(hire.pk, True, self.pro_user)
        self.assertEqual(hire.status, HireStatus.IN_PROGRESS)
        self.assertIsNotNone(hire.started_at)
        self.assertIsNotNone(hire.accepted_at)

        hire = self.manager.complete_engagement(hire.pk, self.pro_user)
        self.assertEqual(hire.status, HireStatus.COMPLETED)
        self.assertIsNotNone(hire.completed_at)

        types = set(Notification.objects.values_list("type", flat=True))
        self.assertIn(Notification.Type.SOLICITUD_ENVIADA, types)
        self.assertIn(Notification.Type.SOLICITUD_ACEPTADA, types)
        self.assertIn(Notification.Type.APROBACION_COMPLETADO, types)

    def test_second_proposal_while_pending_conflicts(self):
        self.manager.create_proposal(self.client_user, self.professional, "primera")

        with self.assertRaises(ConflictError):
            self.manager.create_proposal(self.client_user, self.professional, "segunda")

        self.assertEqual(Hire.objects.count(), 1)

    def test_new_proposal_allowed_after_terminal_status(self):
        hire = self.manager.create_proposal(self.client_user, self.professional)
        self.manager.respond_to_proposal(hire.pk, False, self.pro_user)

        again = self.manager.create_proposal(self.client_user, self.professional)

        self.assertEqual(again.status, HireStatus.PENDING)
        self.assertEqual(Hire.objects.count(), 2)

    def test_reject_stamps_rejected_at(self):
        hire = self.manager.create_proposal(self.client_user, self.professional)

        hire = self.manager.respond_to_proposal(hire.pk, False, self.pro_user)

        self.assertEqual(hire.status, HireStatus.REJECTED)
        self.assertIsNotNone(hire.rejected_at)
        self.assertIsNone(hire.started_at)

    def test_only_professional_can_respond(self):
        hire = self.manager.create_proposal(self.client_user, self.professional)

        with self.assertRaises(ForbiddenError):
            self.manager.respond_to_proposal(hire.pk, True, self.client_user)

        hire.refresh_from_db()
        self.assertEqual(hire.status, HireStatus.PENDING)

    def test_respond_twice_is_invalid(self):
        hire = self.manager.create_proposal(self.client_user, self.professional)
        self.manager.respond_to_proposal(hire.pk, True, self.pro_user)

        with self.assertRaises(InvalidTransitionError):
            self.manager.respond_to_proposal(hire.pk, False, self.pro_user)

    def test_completion_request_and_reopen(self):
        hire = self.manager.create_proposal(self.client_user, self.professional)
        self.manager.respond_to_proposal(hire.pk, True, self.pro_user)

        hire = self.manager.request_completion(hire.pk, self.pro_user)
        self.assertEqual(hire.status, HireStatus.WAITING_CLIENT_APPROVAL)
        self.assertIsNotNone(hire.completion_requested_at)

        hire = self.manager.reopen(hire.pk, self.client_user)
        self.assertEqual(hire.status, HireStatus.IN_PROGRESS)

        self.manager.request_completion(hire.pk, self.pro_user)
        hire = self.manager.complete_engagement(hire.pk, self.client_user)
        self.assertEqual(hire.status, HireStatus.COMPLETED)

    def test_reopen_from_pending_is_invalid(self):
        hire = self.manager.create_proposal(self.client_user, self.professional)

        with self.assertRaises(InvalidTransitionError):
            self.manager.reopen(hire.pk, self.client_user)

    def test_complete_from_pending_is_invalid(self):
        hire = self.manager.create_proposal(self.client_user, self.professional)

        with self.assertRaises(InvalidTransitionError):
            self.manager.complete_engagement(hire.pk, self.pro_user)

        hire.refresh_from_db()
        self.assertEqual(hire.status, HireStatus.PENDING)
        self.assertIsNone(hire.completed_at)

    def test_cancel_from_terminal_is_invalid(self):
        hire = self.manager.create_proposal(self.client_user, self.professional)
        hire = self.manager.cancel_engagement(hire.pk, self.client_user)
        self.assertEqual(hire.status, HireStatus.CANCELLED)
        self.assertIsNotNone(hire.cancelled_at)

        with self.assertRaises(InvalidTransitionError):
            self.manager.cancel_engagement(hire.pk, self.client_user)

    def test_outsider_cannot_cancel(self):
        outsider = User.objects.create_user(email="x@example.com", password="secret")
        hire = self.manager.create_proposal(self.client_user, self.professional)

        with self.assertRaises(ForbiddenError):
            self.manager.cancel_engagement(hire.pk, outsider)

    def test_stale_status_write_is_rejected(self):
        hire = self.manager.create_proposal(self.client_user, self.professional)

        def cancelled_meanwhile(current, target, **kwargs):
            # another request moves the row between our read and our write
            Hire.objects.filter(pk=hire.pk).update(status=HireStatus.CANCELLED)

        with patch("hires.services.check_transition", side_effect=cancelled_meanwhile):
            with self.assertRaises(InvalidTransitionError):
                self.manager.respond_to_proposal(hire.pk, True, self.pro_user)

        hire.refresh_from_db()
        self.assertEqual(hire.status, HireStatus.CANCELLED)
        self.assertIsNone(hire.started_at)

    def test_missing_hire(self):
        with self.assertRaises(NotFoundError):
            self.manager.get(424242)

    def test_cannot_propose_to_self(self):
        with self.assertRaises(ValidationError):
            self.manager.create_proposal(self.pro_user, self.professional)

    def test_inactive_professional_rejects_proposals(self):
        self.professional.is_active = False
        self.professional.save()

        with self.assertRaises(ValidationError):
            self.manager.create_proposal(self.client_user, self.professional)

    def test_notification_failure_does_not_undo_proposal(self):
        with patch(
            "notifications.dispatcher.deliver_notification_task.delay",
            side_effect=RuntimeError("queue offline"),
        ):
            hire = self.manager.create_proposal(self.client_user, self.professional)

        self.assertTrue(Hire.objects.filter(pk=hire.pk, status=HireStatus.PENDING).exists())

    def test_guest_hire_has_unique_token(self):
        first = self.manager.create_guest_hire(self.professional, "Invitado Uno")
        second = self.manager.create_guest_hire(self.professional, "Invitado Dos")

        self.assertTrue(first.is_guest)
        self.assertNotEqual(first.review_token, second.review_token)

    def test_guest_review_shortcut_rejects_registered_hire(self):
        hire = self.manager.create_proposal(self.client_user, self.professional)

        with self.assertRaises(InvalidTransitionError):
            self.manager.complete_for_guest_review(hire)

class OpenRequestTests(TestCase):
    def setUp(self):
        self.manager = HireLifecycleManager()
        self.client_user = User.objects.create_user(
            email="ana@example.com", password="secret", full_name="Ana Cliente"
        )
        self.professional = make_professional()
        self.other_professional = make_professional(email="otro@example.com")

    def publish(self, **overrides):
        data = {"service_category": "plomería", "service_description": "Pierde la canilla"}
        data.update(overrides)
        return self.manager.publish_request(self.client_user, **data)

    def test_publish_creates_pending_request_without_professional(self):
        hire = self.publish(service_location="Palermo")

        self.assertEqual(hire.status, HireStatus.PENDING)
        self.assertTrue(hire.is_open_request)
        self.assertIsNone(hire.professional)
        self.assertEqual(hire.proposal_message, "Pierde la canilla")
        self.assertIn("(abierta)", str(hire))

    def test_publish_requires_category_and_description(self):
        with self.assertRaises(ValidationError):
            self.publish(service_category=" ")
        with self.assertRaises(ValidationError):
            self.publish(service_description="")
        self.assertFalse(Hire.objects.exists())

    def test_listing_depends_on_role(self):
        mine = self.publish()
        self.publish(service_category="electricidad")
        stranger = User.objects.create_user(email="x@example.com", password="secret")

        self.assertEqual(self.manager.list_open_requests(stranger).count(), 0)
        self.assertEqual(self.manager.list_open_requests(self.client_user).count(), 2)
        seen = list(self.manager.list_open_requests(self.professional.user, "plomería"))
        self.assertEqual(seen, [mine])

    def test_claim_assigns_professional_and_starts_work(self):
        hire = self.publish()

        hire = self.manager.claim_request(hire.pk, self.professional.user)

        self.assertEqual(hire.status, HireStatus.IN_PROGRESS)
        self.assertEqual(hire.professional, self.professional)
        self.assertIsNotNone(hire.accepted_at)
        self.assertFalse(self.manager.list_open_requests(self.other_professional.user).exists())
        self.assertTrue(
            Notification.objects.filter(
                user=self.client_user, type=Notification.Type.SOLICITUD_ACEPTADA, related_id=str(hire.pk)
            ).exists()
        )

    def test_second_claim_is_refused(self):
        hire = self.publish()
        self.manager.claim_request(hire.pk, self.professional.user)

        with self.assertRaises(InvalidTransitionError):
            self.manager.claim_request(hire.pk, self.other_professional.user)

        hire.refresh_from_db()
        self.assertEqual(hire.professional, self.professional)

    def test_claim_lost_to_concurrent_claim(self):
        hire = self.publish()

        def claimed_meanwhile(current, target, **kwargs):
            Hire.objects.filter(pk=hire.pk).update(professional=self.other_professional)

        with patch("hires.services.check_transition", side_effect=claimed_meanwhile):
            with self.assertRaises(InvalidTransitionError):
                self.manager.claim_request(hire.pk, self.professional.user)

        hire.refresh_from_db()
        self.assertEqual(hire.professional, self.other_professional)
        self.assertEqual(hire.status, HireStatus.PENDING)

    def test_claim_needs_a_professional_profile(self):
        hire = self.publish()
        stranger = User.objects.create_user(email="x@example.com", password="secret")

        with self.assertRaises(ForbiddenError):
            self.manager.claim_request(hire.pk, stranger)

    def test_claim_conflicts_with_active_hire(self):
        self.manager.create_proposal(self.client_user, self.professional)
        hire = self.publish()

        with self.assertRaises(ConflictError):
            self.manager.claim_request(hire.pk, self.professional.user)

        hire.refresh_from_db()
        self.assertTrue(hire.is_open_request)

    def test_cancelled_request_cannot_be_claimed(self):
        hire = self.publish()
        self.manager.cancel_engagement(hire.pk, self.client_user)

        with self.assertRaises(InvalidTransitionError):
            self.manager.claim_request(hire.pk, self.professional.user)

    def test_unclaimed_request_has_no_professional_actions(self):
        hire = self.publish()

        with self.assertRaises(ForbiddenError):
            self.manager.respond_to_proposal(hire.pk, True, self.professional.user)
        with self.assertRaises(ForbiddenError):
            self.manager.cancel_engagement(hire.pk, self.professional.user)



class HireAPITests(APITestCase):
    def setUp(self):
        self.client_user = User.objects.create_user(email="ana@example.com", password="secret")
        self.professional = make_professional()

    def test_create_and_accept_through_api(self):
        self.client.force_authenticate(user=self.client_user)
        response = self.client.post(
            "/hires/", {"professional": self.professional.pk, "message": "Hola"}, format="json"
        )
        self.assertEqual(response.status_code, 201)
        hire_id = response.data["id"]
        self.assertNotIn("review_token", response.data)

        duplicate = self.client.post("/hires/", {"professional": self.professional.pk}, format="json")
        self.assertEqual(duplicate.status_code, 409)

        self.client.force_authenticate(user=self.professional.user)
        accepted = self.client.post(f"/hires/{hire_id}/accept/")
        self.assertEqual(accepted.status_code, 200)
        self.assertEqual(accepted.data["status"], HireStatus.IN_PROGRESS)

    def test_invalid_transition_returns_conflict(self):
        hire = HireLifecycleManager().create_proposal(self.client_user, self.professional)
        self.client.force_authenticate(user=self.professional.user)

        response = self.client.post(f"/hires/{hire.pk}/complete/")

        self.assertEqual(response.status_code, 409)

    def test_list_only_shows_own_hires(self):
        HireLifecycleManager().create_proposal(self.client_user, self.professional)
        outsider = User.objects.create_user(email="x@example.com", password="secret")
        self.client.force_authenticate(user=outsider)

        response = self.client.get("/hires/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 0)

    def test_guest_hire_endpoint_for_professionals_only(self):
        self.client.force_authenticate(user=self.client_user)
        denied = self.client.post("/hires/guest/", {"guest_name": "Pepe"}, format="json")
        self.assertEqual(denied.status_code, 403)

        self.client.force_authenticate(user=self.professional.user)
        created = self.client.post("/hires/guest/", {"guest_name": "Pepe"}, format="json")
        self.assertEqual(created.status_code, 201)
        self.assertTrue(created.data["review_token"])

    def test_open_request_publish_list_and_claim(self):
        self.client.force_authenticate(user=self.client_user)
        missing = self.client.post("/hires/requests/", {"service_category": "plomería"}, format="json")
        self.assertEqual(missing.status_code, 400)

        created = self.client.post(
            "/hires/requests/",
            {"service_category": "plomería", "service_description": "Pierde la canilla"},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        self.assertIsNone(created.data["professional_name"])
        self.assertTrue(created.data["is_open_request"])
        hire_id = created.data["id"]

        detail = self.client.get(f"/hires/{hire_id}/")
        self.assertEqual(detail.status_code, 200)

        self.client.force_authenticate(user=self.professional.user)
        listed = self.client.get("/hires/requests/", {"category": "plomería"})
        self.assertEqual([row["id"] for row in listed.data], [hire_id])

        claimed = self.client.post(f"/hires/{hire_id}/claim/")
        self.assertEqual(claimed.status_code, 200)
        self.assertEqual(claimed.data["status"], HireStatus.IN_PROGRESS)
        self.assertEqual(claimed.data["professional"], self.professional.pk)
        self.assertEqual(claimed.data["professional_name"], "Bruno")
