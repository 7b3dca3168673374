from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Avg, Count
from django.db.models.signals import post_save
from django.dispatch import receiver

from hires.models import Hire
from professional_profile.models import Professional
from users.models import User

RATING_VALIDATORS = [MinValueValidator(1), MaxValueValidator(5)]


class Review(models.Model):
    """Client (or guest) rating of a professional for one completed hire."""

    hire = models.ForeignKey(Hire, on_delete=models.PROTECT, related_name="reviews")
    professional = models.ForeignKey(Professional, on_delete=models.CASCADE, related_name="reviews")
    client = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name="reviews_written")
    rating = models.PositiveSmallIntegerField(validators=RATING_VALIDATORS)
    comment = models.TextField(blank=True)
    cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    is_guest_review = models.BooleanField(default=False)
    guest_reviewer_name = models.CharField(max_length=200, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['hire'], name='unique_review_per_hire')
        ]
        ordering = ['-created_at']

    def reviewer_name(self):
        if self.client_id:
            return self.client.get_full_name()
        return self.guest_reviewer_name or "Invitado"

    def __str__(self):
        return f"{self.hire_id} - {self.rating}"


class ClientReview(models.Model):
    """The professional's rating of the client."""

    hire = models.ForeignKey(Hire, on_delete=models.PROTECT, related_name="client_reviews")
    client = models.ForeignKey(User, on_delete=models.CASCADE, related_name="client_reviews")
    professional = models.ForeignKey(Professional, on_delete=models.CASCADE, related_name="client_reviews_written")
    rating = models.PositiveSmallIntegerField(validators=RATING_VALIDATORS)
    comment = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['client', 'professional', 'hire'], name='unique_client_review_per_hire'
            )
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.professional_id} -> {self.client_id} ({self.rating})"


@receiver(post_save, sender=Review)
def update_professional_rating(sender, instance, created, **kwargs):
    """Recompute the denormalised rating on the professional."""
    stats = Review.objects.filter(professional_id=instance.professional_id).aggregate(
        avg=Avg("rating"), count=Count("id")
    )
    Professional.objects.filter(pk=instance.professional_id).update(
        rating=Decimal(str(round(stats["avg"] or 0, 2))),
        rating_count=stats["count"],
    )
