"""Review gate: who may review which hire, and the guest token flow."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from common.choices import HireStatus
from common.exceptions import (
    AlreadyReviewedError,
    DuplicateReviewError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    wrap_store_errors,
)
from hires.models import Hire
from hires.services import HireLifecycleManager
from notifications.dispatcher import notify_template
from notifications.models import Notification

from .models import ClientReview, Review

logger = logging.getLogger(__name__)


def validate_rating(rating) -> int:
    try:
        value = int(rating)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Rating must be a number between 1 and 5.") from exc
    if isinstance(rating, float) and not rating.is_integer():
        raise ValidationError("Rating must be a whole number between 1 and 5.")
    if not 1 <= value <= 5:
        raise ValidationError("Rating must be between 1 and 5.")
    return value


def _get_hire(hire_id) -> Hire:
    try:
        return Hire.objects.select_related("client", "professional__user").get(pk=hire_id)
    except Hire.DoesNotExist as exc:
        raise NotFoundError("Hire not found.") from exc


def _notify_new_review(review: Review, sender=None) -> None:
    notify_template(
        Notification.Type.NUEVA_RESENA,
        review.professional.user,
        sender,
        related_id=review.pk,
        related_type="review",
        subject=str(review.rating),
        sender_name=review.reviewer_name(),
    )


@wrap_store_errors
def is_reviewable(client, professional) -> Optional[Hire]:
    """Latest completed, still unreviewed hire between the two, if any."""

    return (
        Hire.objects.filter(
            client=client,
            professional=professional,
            status=HireStatus.COMPLETED,
            reviews__isnull=True,
        )
        .order_by("-completed_at", "-id")
        .first()
    )


@wrap_store_errors
def submit_review(hire_id, reviewer, rating, comment: str = "", cost: Optional[Decimal] = None) -> Review:
    rating = validate_rating(rating)
    hire = _get_hire(hire_id)
    if hire.client_id is None or hire.client_id != reviewer.pk:
        raise ForbiddenError("Only the client of this hire can review it.")
    if hire.status != HireStatus.COMPLETED:
        raise InvalidTransitionError("Only completed hires can be reviewed.")

    try:
        with transaction.atomic():
            review = Review.objects.create(
                hire=hire,
                professional=hire.professional,
                client=reviewer,
                rating=rating,
                comment=comment or "",
                cost=cost,
            )
    except IntegrityError as exc:
        raise DuplicateReviewError() from exc

    logger.info("Review %s stored for hire %s", review.pk, hire.pk)
    _notify_new_review(review, reviewer)
    return review


@wrap_store_errors
def submit_client_review(hire_id, professional_user, rating, comment: str = "") -> ClientReview:
    rating = validate_rating(rating)
    hire = _get_hire(hire_id)
    if hire.professional_id is None or hire.professional.user_id != professional_user.pk:
        raise ForbiddenError("Only the professional of this hire can review the client.")
    if hire.client_id is None:
        raise ValidationError("Guest clients cannot be reviewed.")
    if hire.status != HireStatus.COMPLETED:
        raise InvalidTransitionError("Only completed hires can be reviewed.")

    try:
        with transaction.atomic():
            client_review = ClientReview.objects.create(
                hire=hire,
                client=hire.client,
                professional=hire.professional,
                rating=rating,
                comment=comment or "",
            )
    except IntegrityError as exc:
        raise DuplicateReviewError("You already reviewed this client for this hire.") from exc

    logger.info("Client review %s stored for hire %s", client_review.pk, hire.pk)
    return client_review


@wrap_store_errors
def fetch_hire_by_token(token) -> Hire:
    hire = (
        Hire.objects.select_related("professional__user")
        .filter(review_token=token, client__isnull=True)
        .first()
    ) if token else None
    if hire is None:
        raise NotFoundError("Review link is not valid.")
    if hire.reviewed_by_guest or hire.reviews.exists():
        raise AlreadyReviewedError()
    if hire.status in (HireStatus.REJECTED, HireStatus.CANCELLED):
        raise InvalidTransitionError("This hire can no longer be reviewed.")
    return hire


@wrap_store_errors
def submit_guest_review(token, rating, comment: str = "", reviewer_name: str = "") -> Review:
    """
    Store the guest's review and close the hire in one transaction; a second
    submission with the same token raises :class:`AlreadyReviewedError`.
    """
    rating = validate_rating(rating)
    hire = fetch_hire_by_token(token)

    try:
        with transaction.atomic():
            review = Review.objects.create(
                hire=hire,
                professional=hire.professional,
                client=None,
                rating=rating,
                comment=comment or "",
                is_guest_review=True,
                guest_reviewer_name=(reviewer_name or hire.guest_client_name).strip(),
            )
            if hire.status == HireStatus.COMPLETED:
                marked = Hire.objects.filter(pk=hire.pk, reviewed_by_guest=False).update(reviewed_by_guest=True)
                if not marked:
                    raise AlreadyReviewedError()
            else:
                HireLifecycleManager().complete_for_guest_review(hire)
    except IntegrityError as exc:
        raise AlreadyReviewedError() from exc

    logger.info("Guest review %s stored for hire %s", review.pk, hire.pk)
    _notify_new_review(review)
    return review


__all__ = [
    "fetch_hire_by_token",
    "is_reviewable",
    "submit_client_review",
    "submit_guest_review",
    "submit_review",
    "validate_rating",
]
