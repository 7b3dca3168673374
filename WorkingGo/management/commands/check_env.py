import os
from collections import defaultdict
from typing import Dict, Iterable, List

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError


class Command(BaseCommand):
    help = "Report presence of the environment variables WorkingGo needs in production."

    def handle(self, *args, **options):
        grouped: Dict[str, List[str]] = defaultdict(list)
        missing_required = False

        for requirement in self._build_requirements():
            key = requirement["key"]
            note = requirement["note"]
            value = os.environ.get(key)

            if self._is_required(requirement) and not value:
                missing_required = True
                grouped[requirement["group"]].append(self.style.ERROR(f"✗ {key}: missing ({note})"))
            elif value:
                grouped[requirement["group"]].append(self.style.SUCCESS(f"✓ {key}: set"))
            else:
                grouped[requirement["group"]].append(self.style.WARNING(f"• {key}: optional ({note})"))

        for group, lines in grouped.items():
            self.stdout.write("")
            self.stdout.write(self.style.MIGRATE_HEADING(group))
            for line in lines:
                self.stdout.write(f"  {line}")

        if missing_required:
            raise CommandError("Missing required environment variables. See messages above.")

        self.stdout.write("")
        self.stdout.write(self.style.SUCCESS("All required environment variables are set."))

    def _build_requirements(self) -> Iterable[Dict[str, object]]:
        return [
            {"group": "Core", "key": "SECRET_KEY", "note": "Django crypto key", "required": True},
            {"group": "Core", "key": "ALLOWED_HOSTS", "note": "Comma separated host names", "required": False},
            {
                "group": "Database",
                "key": "DB_NAME",
                "note": "PostgreSQL database name, SQLite is used when unset",
                "required": False,
            },
            {
                "group": "Database",
                "key": "DB_USER",
                "note": "Database username",
                "required": self._database_required,
            },
            {
                "group": "Database",
                "key": "DB_PASSWORD",
                "note": "Database password",
                "required": self._database_required,
            },
            {
                "group": "Payments",
                "key": "MERCADOPAGO_ACCESS_TOKEN",
                "note": "MercadoPago access token for preferences and webhooks",
                "required": True,
            },
            {
                "group": "Payments",
                "key": "MERCADOPAGO_WEBHOOK_URL",
                "note": "Public URL MercadoPago posts payment events to",
                "required": False,
            },
            {
                "group": "Payments",
                "key": "MERCADOPAGO_API_URL",
                "note": "Override for the MercadoPago API base URL",
                "required": False,
            },
            {
                "group": "Subscription",
                "key": "SUBSCRIPTION_SUCCESS_URL",
                "note": "Frontend page after a successful checkout",
                "required": False,
            },
            {
                "group": "Subscription",
                "key": "SUBSCRIPTION_FAILURE_URL",
                "note": "Frontend page after a failed checkout",
                "required": False,
            },
            {
                "group": "Realtime",
                "key": "REDIS_URL",
                "note": "Redis URL for the channel layer & Celery broker",
                "required": False,
            },
        ]

    def _is_required(self, requirement: Dict[str, object]) -> bool:
        flag = requirement.get("required", False)
        if callable(flag):
            return bool(flag())
        return bool(flag)

    def _database_required(self) -> bool:
        return settings.DATABASES["default"]["ENGINE"] != "django.db.backends.sqlite3"
