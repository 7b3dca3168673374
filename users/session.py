"""Explicit session object holding the current identity and derived flags."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.utils import timezone

from common.exceptions import NotFoundError, wrap_store_errors
from payments.services import is_entitled
from professional_profile.models import Professional
from users.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Snapshot of one user's profile as fetched at ``fetched_at``.

    ``is_entitled`` is derived from the fetched subscription fields and is only
    valid for this snapshot; call :meth:`SessionManager.refresh` to recompute.
    """

    user: User
    professional: Optional[Professional]
    is_entitled: bool
    fetched_at: datetime

    @property
    def user_id(self) -> int:
        return self.user.pk

    @property
    def is_professional(self) -> bool:
        return self.user.is_professional and self.professional is not None


class SessionManager:
    """Builds session snapshots for one identity; each refresh is a new snapshot."""

    def __init__(self, user_id: int):
        self.user_id = user_id

    @classmethod
    def for_request(cls, request) -> "SessionManager":
        return cls(request.user.pk)

    @wrap_store_errors
    def refresh(self) -> Session:
        try:
            user = User.objects.get(pk=self.user_id)
        except User.DoesNotExist as exc:
            raise NotFoundError("User not found.") from exc

        professional = None
        if user.is_professional:
            professional = Professional.objects.filter(user=user).first()

        now = timezone.now()
        session = Session(
            user=user,
            professional=professional,
            is_entitled=is_entitled(user, now=now),
            fetched_at=now,
        )
        logger.debug("Session refreshed for user %s (entitled=%s)", user.pk, session.is_entitled)
        return session
