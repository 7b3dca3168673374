import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import hires.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("professional_profile", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Hire",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("in_progress", "In progress"),
                            ("waiting_client_approval", "Waiting client approval"),
                            ("completed", "Completed"),
                            ("rejected", "Rejected"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=30,
                    ),
                ),
                ("proposal_message", models.TextField(blank=True)),
                ("accepted_at", models.DateTimeField(blank=True, null=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("completion_requested_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("guest_client_name", models.CharField(blank=True, max_length=200)),
                ("guest_client_email", models.EmailField(blank=True, max_length=254)),
                ("guest_client_phone", models.CharField(blank=True, max_length=30)),
                (
                    "review_token",
                    models.CharField(
                        default=hires.models.generate_review_token, editable=False, max_length=64, unique=True
                    ),
                ),
                ("reviewed_by_guest", models.BooleanField(default=False)),
                ("service_category", models.CharField(blank=True, max_length=100)),
                ("service_description", models.TextField(blank=True)),
                ("service_location", models.CharField(blank=True, max_length=200)),
                (
                    "client",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="hires",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "professional",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="hires",
                        to="professional_profile.professional",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["client", "professional", "status"], name="hire_party_status_idx")
                ],
            },
        ),
    ]
