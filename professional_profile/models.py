from decimal import Decimal

from django.db import models
from django.utils import timezone

from users.models import User


def avatar_upload_path(instance, filename):
    return f"professional_avatars/{instance.user.id}/{filename}"


class Professional(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='professional_profile')

    # public profile
    display_name = models.CharField(max_length=200, blank=True)
    profession = models.CharField(max_length=100, blank=True, db_index=True)
    location = models.CharField(max_length=200, blank=True)
    hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    bio = models.TextField(blank=True)
    avatar = models.ImageField(upload_to=avatar_upload_path, blank=True, null=True)

    # aggregates, written only by the review signal
    rating = models.DecimalField(max_digits=3, decimal_places=2, default=Decimal("0.00"))
    rating_count = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)
    is_verified = models.BooleanField(default=False)

    # mirrored from the owning User's subscription by the payment webhook
    is_premium = models.BooleanField(default=False)
    subscription_end_date = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-is_premium', '-rating']

    @property
    def has_premium_visibility(self):
        return bool(
            self.is_premium
            and self.subscription_end_date
            and self.subscription_end_date > timezone.now()
        )

    def get_display_name(self):
        return self.display_name or self.user.get_full_name()

    def __str__(self):
        return f"{self.get_display_name()} | {self.profession}"
