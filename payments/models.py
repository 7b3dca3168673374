from decimal import Decimal

from django.db import models

from users.models import User


class Payment(models.Model):
    """
    One provider payment, keyed by the provider's id. The unique key is what
    makes repeated webhook deliveries apply the subscription writes once.
    """
    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        APPROVED = 'approved', 'Approved'
        REJECTED = 'rejected', 'Rejected'

    provider_payment_id = models.CharField(max_length=64, unique=True)
    user = models.ForeignKey(
        User, on_delete=models.SET_NULL, related_name="payments", null=True, blank=True
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=8, blank=True)
    provider_data = models.JSONField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Payment {self.provider_payment_id} | {self.user_id} | {self.amount} {self.currency} | {self.status}"

    @property
    def is_approved(self):
        return self.status == self.Status.APPROVED
