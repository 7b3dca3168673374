"""Subscription gate: entitlement, activation, cancellation and messaging quota."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from common.choices import SubscriptionStatus, SubscriptionType
from common.exceptions import QuotaExceededError, wrap_store_errors
from professional_profile.models import Professional
from users.models import User

from . import utils as mercadopago
from .models import Payment

logger = logging.getLogger("payments")

# cancelled subscriptions keep their benefits until the paid period ends
ENTITLED_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED})

APPROVED = "approved"


def is_entitled(user, now=None) -> bool:
    if user is None:
        return False
    now = now or timezone.now()
    end = user.subscription_end_date
    return (
        user.subscription_type == SubscriptionType.PREMIUM
        and user.subscription_status in ENTITLED_STATUSES
        and end is not None
        and end > now
    )


# ----------------------------------------------------------------- quota
@dataclass(frozen=True)
class MessageQuota:
    """``limit``/``remaining`` are ``None`` when sending is unlimited."""

    limit: Optional[int]
    used: int
    remaining: Optional[int]

    @property
    def exhausted(self) -> bool:
        return self.remaining is not None and self.remaining <= 0

    def as_dict(self) -> dict:
        return {"limit": self.limit, "used": self.used, "remaining": self.remaining}


def message_quota(user, conversation, now=None) -> MessageQuota:
    used = conversation.messages.filter(sender=user).count()
    if not user.is_professional or is_entitled(user, now=now):
        return MessageQuota(limit=None, used=used, remaining=None)
    limit = settings.FREE_MESSAGE_LIMIT
    return MessageQuota(limit=limit, used=used, remaining=max(limit - used, 0))


def check_message_quota(user, conversation) -> MessageQuota:
    quota = message_quota(user, conversation)
    if quota.exhausted:
        logger.info("User %s hit the free message limit in conversation %s", user.pk, conversation.pk)
        raise QuotaExceededError()
    return quota


# ---------------------------------------------------------- subscription
@wrap_store_errors
def activate_subscription(user, now=None):
    """Premium for one period from ``now``, mirrored onto the professional profile."""

    now = now or timezone.now()
    end = now + timedelta(days=settings.SUBSCRIPTION_PERIOD_DAYS)
    with transaction.atomic():
        User.objects.filter(pk=user.pk).update(
            subscription_type=SubscriptionType.PREMIUM,
            subscription_status=SubscriptionStatus.ACTIVE,
            subscription_start_date=now,
            subscription_end_date=end,
            updated_at=now,
        )
        Professional.objects.filter(user_id=user.pk).update(
            is_premium=True, subscription_end_date=end, updated_at=now
        )
    user.refresh_from_db()
    logger.info("Subscription activated for user %s until %s", user.pk, end.isoformat())
    return user


@wrap_store_errors
def cancel_subscription(user):
    """Stops renewal only; entitlement lasts until ``subscription_end_date``."""

    if user.subscription_status != SubscriptionStatus.ACTIVE:
        raise ValidationError("There is no active subscription to cancel.")
    user.subscription_status = SubscriptionStatus.CANCELLED
    user.save(update_fields=["subscription_status", "updated_at"])
    logger.info("Subscription cancelled for user %s (ends %s)", user.pk, user.subscription_end_date)
    return user


def create_checkout(user, currency=None, amount=None) -> str:
    currency = (currency or settings.SUBSCRIPTION_DEFAULT_CURRENCY).upper()
    try:
        amount = Decimal(str(amount if amount is not None else settings.SUBSCRIPTION_DEFAULT_AMOUNT))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Invalid amount.") from exc
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero.")

    preference = mercadopago.create_preference(user.pk, currency, amount)
    init_point = preference.get("init_point")
    if not init_point:
        logger.error("Preference for user %s returned no init_point: %s", user.pk, preference)
        raise ValidationError("Payment provider did not return a checkout URL.")
    return init_point


# --------------------------------------------------------------- webhook
@dataclass
class PaymentEventResult:
    payment: Payment
    applied: bool
    duplicate: bool = False


def _user_from_reference(reference) -> Optional[User]:
    try:
        return User.objects.get(pk=int(reference))
    except (TypeError, ValueError, User.DoesNotExist):
        return None


def _map_status(provider_status) -> str:
    if provider_status == APPROVED:
        return Payment.Status.APPROVED
    if provider_status in ("rejected", "cancelled", "refunded", "charged_back"):
        return Payment.Status.REJECTED
    return Payment.Status.PENDING


@wrap_store_errors
def apply_payment_event(provider_payment_id) -> PaymentEventResult:
    """
    Look the payment up at the provider and, when approved, activate the
    payer's subscription exactly once per provider payment id.
    """
    data = mercadopago.fetch_payment(provider_payment_id)
    pid = str(data.get("id") or provider_payment_id)
    provider_status = data.get("status")
    user = _user_from_reference(data.get("external_reference"))

    with transaction.atomic():
        try:
            with transaction.atomic():
                Payment.objects.get_or_create(
                    provider_payment_id=pid,
                    defaults={"user": user},
                )
        except IntegrityError:
            pass
        payment = Payment.objects.select_for_update().get(provider_payment_id=pid)

        if payment.is_approved:
            logger.info("Payment %s already applied, ignoring redelivery", pid)
            return PaymentEventResult(payment=payment, applied=False, duplicate=True)

        payment.user = payment.user or user
        payment.status = _map_status(provider_status)
        payment.amount = Decimal(str(data.get("transaction_amount") or "0"))
        payment.currency = data.get("currency_id") or ""
        payment.provider_data = data
        payment.save()

        if not payment.is_approved:
            logger.info("Payment %s status %s, no subscription change", pid, provider_status)
            return PaymentEventResult(payment=payment, applied=False)

        if payment.user is None:
            logger.error("Approved payment %s has unknown external_reference %r", pid, data.get("external_reference"))
            return PaymentEventResult(payment=payment, applied=False)

        activate_subscription(payment.user)

    return PaymentEventResult(payment=payment, applied=True)


__all__ = [
    "ENTITLED_STATUSES",
    "MessageQuota",
    "PaymentEventResult",
    "activate_subscription",
    "apply_payment_event",
    "cancel_subscription",
    "check_message_quota",
    "create_checkout",
    "is_entitled",
    "message_quota",
]
