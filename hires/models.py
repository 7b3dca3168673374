import secrets

from django.db import models

from common.choices import HireStatus
from common.models import BaseModel
from professional_profile.models import Professional
from users.models import User


def generate_review_token():
    return secrets.token_urlsafe(32)


class Hire(BaseModel):
    """
    One engagement between a client (or a guest) and a professional.
    Rows are never deleted; status moves only through HireLifecycleManager.
    """

    client = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name='hires', null=True, blank=True
    )
    # open requests have no professional until one claims them
    professional = models.ForeignKey(
        Professional, on_delete=models.PROTECT, related_name='hires', null=True, blank=True
    )
    status = models.CharField(
        max_length=30, choices=HireStatus.choices, default=HireStatus.PENDING, db_index=True
    )
    proposal_message = models.TextField(blank=True)

    accepted_at = models.DateTimeField(blank=True, null=True)
    started_at = models.DateTimeField(blank=True, null=True)
    rejected_at = models.DateTimeField(blank=True, null=True)
    completion_requested_at = models.DateTimeField(blank=True, null=True)
    completed_at = models.DateTimeField(blank=True, null=True)
    cancelled_at = models.DateTimeField(blank=True, null=True)

    # guest hires have no client account
    guest_client_name = models.CharField(max_length=200, blank=True)
    guest_client_email = models.EmailField(blank=True)
    guest_client_phone = models.CharField(max_length=30, blank=True)
    review_token = models.CharField(
        max_length=64, unique=True, default=generate_review_token, editable=False
    )
    reviewed_by_guest = models.BooleanField(default=False)

    service_category = models.CharField(max_length=100, blank=True)
    service_description = models.TextField(blank=True)
    service_location = models.CharField(max_length=200, blank=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['client', 'professional', 'status'], name='hire_party_status_idx'),
        ]

    @property
    def is_guest(self):
        return self.client_id is None

    def client_display_name(self):
        if self.client_id:
            return self.client.get_full_name()
        return self.guest_client_name or "Invitado"

    def is_party(self, user):
        if user is None or not user.is_authenticated:
            return False
        professional_user_id = self.professional.user_id if self.professional_id else None
        return user.pk in (self.client_id, professional_user_id)

    @property
    def is_open_request(self):
        return self.professional_id is None

    def __str__(self):
        return f"Hire #{self.pk} {self.client_display_name()} -> {self.professional or '(abierta)'} | {self.status}"
