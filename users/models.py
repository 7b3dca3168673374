from django.contrib.auth.models import BaseUserManager, PermissionsMixin, AbstractBaseUser
from django.db import models
from django.utils import timezone

from common.choices import SubscriptionStatus, SubscriptionType


# ================= Custom User =================
class UserManager(BaseUserManager):
    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('An email address is required')
        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        return self.create_user(email, password, **extra_fields)

    def email_exists(self, email_input):
        if not email_input:
            return False
        return self.filter(email__iexact=email_input.strip()).exists()


class User(AbstractBaseUser, PermissionsMixin):
    email = models.EmailField(unique=True)
    full_name = models.CharField(max_length=200, blank=True)
    is_professional = models.BooleanField(default=False)

    # contact fields are filled in lazily after registration
    phone = models.CharField(max_length=30, blank=True)
    address = models.CharField(max_length=250, blank=True)

    subscription_type = models.CharField(
        max_length=20, choices=SubscriptionType.choices, default=SubscriptionType.FREE
    )
    subscription_status = models.CharField(
        max_length=20, choices=SubscriptionStatus.choices, default=SubscriptionStatus.INACTIVE
    )
    subscription_start_date = models.DateTimeField(blank=True, null=True)
    subscription_end_date = models.DateTimeField(blank=True, null=True)

    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    date_joined = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    def __str__(self):
        return self.email

    def get_full_name(self):
        return self.full_name.strip() or self.email

    def get_short_name(self):
        return self.full_name.split(" ")[0] if self.full_name else self.email
