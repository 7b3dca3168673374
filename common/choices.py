from django.utils.translation import gettext_lazy as _
from django.db import models


class HireStatus(models.TextChoices):
    PENDING = 'pending', _('Pending')
    IN_PROGRESS = 'in_progress', _('In progress')
    WAITING_CLIENT_APPROVAL = 'waiting_client_approval', _('Waiting client approval')
    COMPLETED = 'completed', _('Completed')
    REJECTED = 'rejected', _('Rejected')
    CANCELLED = 'cancelled', _('Cancelled')


class SubscriptionType(models.TextChoices):
    FREE = 'free', _('Free')
    PREMIUM = 'premium', _('Premium')


class SubscriptionStatus(models.TextChoices):
    INACTIVE = 'inactive', _('Inactive')
    ACTIVE = 'active', _('Active')
    CANCELLED = 'cancelled', _('Cancelled')
