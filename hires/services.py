"""Hire lifecycle: proposal, acceptance, completion and cancellation.

Every status change re-reads the row and writes with an update filtered on
the status it read, so two racing callers cannot both move the same hire.
The loser gets :class:`InvalidTransitionError` and should re-fetch.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from common.choices import HireStatus
from common.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    wrap_store_errors,
)
from notifications.dispatcher import notify_template
from notifications.models import Notification
from professional_profile.models import Professional

from .models import Hire
from .transitions import ACTIVE_STATUSES, check_transition

logger = logging.getLogger("hires")


class HireLifecycleManager:
    """Stateless; a fresh instance per request is fine."""

    # ---------------------------------------------------------------- reads
    @wrap_store_errors
    def get(self, hire_id) -> Hire:
        try:
            return Hire.objects.select_related("client", "professional__user").get(pk=hire_id)
        except Hire.DoesNotExist as exc:
            raise NotFoundError("Hire not found.") from exc

    @wrap_store_errors
    def list_for(self, user):
        return (
            Hire.objects.select_related("client", "professional__user")
            .filter(Q(client=user) | Q(professional__user=user))
            .order_by("-created_at", "-id")
        )

    def has_active_hire(self, client, professional) -> bool:
        return Hire.objects.filter(
            client=client, professional=professional, status__in=ACTIVE_STATUSES
        ).exists()

    # -------------------------------------------------------------- creation
    @wrap_store_errors
    def create_proposal(
        self,
        client,
        professional: Professional,
        message: str = "",
        *,
        service_category: str = "",
        service_description: str = "",
        service_location: str = "",
    ) -> Hire:
        if professional.user_id == client.pk:
            raise ValidationError("You cannot send a proposal to yourself.")
        if not professional.is_active:
            raise ValidationError("This professional is not accepting proposals.")

        with transaction.atomic():
            # serialises concurrent proposals to the same professional
            Professional.objects.select_for_update().get(pk=professional.pk)
            if self.has_active_hire(client, professional):
                raise ConflictError()
            hire = Hire.objects.create(
                client=client,
                professional=professional,
                status=HireStatus.PENDING,
                proposal_message=message or "",
                service_category=service_category,
                service_description=service_description,
                service_location=service_location,
            )

        logger.info("Hire %s proposed by user %s to professional %s", hire.pk, client.pk, professional.pk)
        notify_template(
            Notification.Type.SOLICITUD_ENVIADA,
            professional.user,
            client,
            related_id=hire.pk,
            related_type="hire",
            subject=service_category or "un trabajo",
        )
        return hire

    @wrap_store_errors
    def create_guest_hire(
        self,
        professional: Professional,
        guest_name: str,
        guest_email: str = "",
        guest_phone: str = "",
        *,
        message: str = "",
        service_category: str = "",
        service_description: str = "",
        service_location: str = "",
    ) -> Hire:
        if not (guest_name or "").strip():
            raise ValidationError("Guest name is required.")
        hire = Hire.objects.create(
            client=None,
            professional=professional,
            status=HireStatus.PENDING,
            proposal_message=message,
            guest_client_name=guest_name.strip(),
            guest_client_email=guest_email,
            guest_client_phone=guest_phone,
            service_category=service_category,
            service_description=service_description,
            service_location=service_location,
        )
        logger.info("Guest hire %s created for professional %s", hire.pk, professional.pk)
        return hire

    @wrap_store_errors
    def publish_request(
        self,
        client,
        *,
        service_category: str,
        service_description: str,
        service_location: str = "",
    ) -> Hire:
        """Post a pending hire with no professional; any professional may claim it."""

        if not (service_category or "").strip():
            raise ValidationError("A service category is required.")
        if not (service_description or "").strip():
            raise ValidationError("A description of the work is required.")
        hire = Hire.objects.create(
            client=client,
            professional=None,
            status=HireStatus.PENDING,
            proposal_message=service_description.strip(),
            service_category=service_category.strip(),
            service_description=service_description.strip(),
            service_location=(service_location or "").strip(),
        )
        logger.info("Open request %s published by user %s", hire.pk, client.pk)
        return hire

    @wrap_store_errors
    def list_open_requests(self, user, category: Optional[str] = None):
        """
        Professionals see every unclaimed request; anyone else sees only the
        ones they published.
        """
        qs = Hire.objects.select_related("client").filter(
            professional__isnull=True, status=HireStatus.PENDING
        )
        if getattr(user, "professional_profile", None) is None:
            qs = qs.filter(client=user)
        if category:
            qs = qs.filter(service_category=category)
        return qs.order_by("-created_at", "-id")

    # ----------------------------------------------------------- transitions
    def respond_to_proposal(self, hire_id, accept: bool, actor) -> Hire:
        hire = self.get(hire_id)
        self._require_professional(hire, actor)
        if accept:
            hire = self._transition(
                hire,
                HireStatus.IN_PROGRESS,
                stamps=("accepted_at", "started_at"),
                sources=(HireStatus.PENDING,),
            )
            notify_type = Notification.Type.SOLICITUD_ACEPTADA
        else:
            hire = self._transition(
                hire,
                HireStatus.REJECTED,
                stamps=("rejected_at",),
                sources=(HireStatus.PENDING,),
            )
            notify_type = Notification.Type.SOLICITUD_RECHAZADA

        notify_template(
            notify_type,
            hire.client,
            actor,
            related_id=hire.pk,
            related_type="hire",
            sender_name=hire.professional.get_display_name(),
        )
        return hire

    def request_completion(self, hire_id, actor) -> Hire:
        hire = self.get(hire_id)
        self._require_professional(hire, actor)
        hire = self._transition(
            hire,
            HireStatus.WAITING_CLIENT_APPROVAL,
            stamps=("completion_requested_at",),
        )
        notify_template(
            Notification.Type.TRABAJO_COMPLETADO,
            hire.client,
            actor,
            related_id=hire.pk,
            related_type="hire",
            sender_name=hire.professional.get_display_name(),
        )
        return hire

    def reopen(self, hire_id, actor) -> Hire:
        hire = self.get(hire_id)
        self._require_party(hire, actor)
        return self._transition(
            hire,
            HireStatus.IN_PROGRESS,
            sources=(HireStatus.WAITING_CLIENT_APPROVAL,),
        )

    def complete_engagement(self, hire_id, actor) -> Hire:
        hire = self.get(hire_id)
        self._require_party(hire, actor)
        hire = self._transition(hire, HireStatus.COMPLETED, stamps=("completed_at",))

        counterparty = hire.professional.user if actor.pk == hire.client_id else hire.client
        notify_template(
            Notification.Type.APROBACION_COMPLETADO,
            counterparty,
            actor,
            related_id=hire.pk,
            related_type="hire",
        )
        return hire

    def cancel_engagement(self, hire_id, actor) -> Hire:
        hire = self.get(hire_id)
        self._require_party(hire, actor)
        return self._transition(hire, HireStatus.CANCELLED, stamps=("cancelled_at",))

    def claim_request(self, hire_id, actor) -> Hire:
        """A professional takes an open request, which starts the work right away."""

        hire = self.get(hire_id)
        professional = getattr(actor, "professional_profile", None)
        if professional is None:
            raise ForbiddenError("Only professionals can take open requests.")
        if not hire.is_open_request:
            raise InvalidTransitionError("This request was already taken.")
        if hire.client_id == actor.pk:
            raise ValidationError("You cannot take your own request.")
        if not professional.is_active:
            raise ValidationError("Your profile is not accepting work.")

        with transaction.atomic():
            Professional.objects.select_for_update().get(pk=professional.pk)
            if self.has_active_hire(hire.client, professional):
                raise ConflictError()
            hire = self._transition(
                hire,
                HireStatus.IN_PROGRESS,
                stamps=("accepted_at", "started_at"),
                sources=(HireStatus.PENDING,),
                extra={"professional": professional},
                unclaimed=True,
            )

        notify_template(
            Notification.Type.SOLICITUD_ACEPTADA,
            hire.client,
            actor,
            related_id=hire.pk,
            related_type="hire",
            sender_name=professional.get_display_name(),
        )
        return hire

    def complete_for_guest_review(self, hire: Hire) -> Hire:
        """Guest shortcut to ``completed``; callers wrap this with the review insert."""

        if not hire.is_guest:
            raise InvalidTransitionError("Only guest hires can be completed by a guest review.")
        return self._transition(
            hire,
            HireStatus.COMPLETED,
            stamps=("completed_at",),
            extra={"reviewed_by_guest": True},
            guest_review=True,
        )

    # --------------------------------------------------------------- helpers
    @wrap_store_errors
    def _transition(
        self,
        hire: Hire,
        target,
        *,
        stamps: Iterable[str] = (),
        sources: Optional[Iterable[str]] = None,
        extra: Optional[dict] = None,
        guest_review: bool = False,
        unclaimed: bool = False,
    ) -> Hire:
        current = Hire.objects.filter(pk=hire.pk).values_list("status", flat=True).first()
        if current is None:
            raise NotFoundError("Hire not found.")
        if sources is not None and current not in sources:
            raise InvalidTransitionError(
                f"Cannot move a hire from '{current}' to '{target}'."
            )
        check_transition(current, target, guest_review=guest_review)

        now = timezone.now()
        values = {"status": target, "updated_at": now}
        values.update({field: now for field in stamps})
        values.update(extra or {})

        rows = Hire.objects.filter(pk=hire.pk, status=current)
        if unclaimed:
            rows = rows.filter(professional__isnull=True)
        updated = rows.update(**values)
        if not updated:
            logger.warning("Hire %s changed status while moving %s -> %s", hire.pk, current, target)
            raise InvalidTransitionError("The hire was modified by someone else, reload and retry.")

        logger.info("Hire %s: %s -> %s", hire.pk, current, target)
        hire.refresh_from_db()
        return hire

    def _require_party(self, hire: Hire, actor):
        if not hire.is_party(actor):
            raise ForbiddenError()

    def _require_professional(self, hire: Hire, actor):
        if actor is None or hire.professional_id is None or actor.pk != hire.professional.user_id:
            raise ForbiddenError("Only the professional can perform this action.")


__all__ = ["HireLifecycleManager"]
