"""Domain error taxonomy shared by the hire, chat, review and payment apps."""

from __future__ import annotations

import functools
import logging

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger("common")


class WorkingGoError(Exception):
    """Base class for errors raised by the marketplace services."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request could not be completed."

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFoundError(WorkingGoError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."


class ConflictError(WorkingGoError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "An active hire already exists between these users."


class InvalidTransitionError(WorkingGoError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Transition is not allowed from the current status."


class DuplicateReviewError(WorkingGoError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "A review was already submitted."


class AlreadyReviewedError(WorkingGoError):
    status_code = status.HTTP_410_GONE
    default_detail = "This hire was already reviewed."


class RemoteUnavailableError(WorkingGoError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Service temporarily unavailable, please retry."


class ForbiddenError(WorkingGoError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not a party to this resource."


class QuotaExceededError(WorkingGoError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_detail = "Free messaging limit reached. Upgrade to Premium to keep chatting."


def wrap_store_errors(func):
    """Re-raise database failures as :class:`RemoteUnavailableError`.

    ``IntegrityError`` passes through untouched so callers can translate
    uniqueness violations into their own domain errors.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except IntegrityError:
            raise
        except DatabaseError as exc:
            logger.error("Store call %s failed: %s", func.__qualname__, exc)
            raise RemoteUnavailableError() from exc

    return wrapper


def error_response(exc: Exception) -> Response:
    """Translate a domain or validation error into an API response."""

    if isinstance(exc, WorkingGoError):
        return Response({"detail": exc.detail}, status=exc.status_code)
    if isinstance(exc, ValidationError):
        return Response({"detail": " ".join(exc.messages)}, status=status.HTTP_400_BAD_REQUEST)
    raise exc


__all__ = [
    "WorkingGoError",
    "NotFoundError",
    "ConflictError",
    "InvalidTransitionError",
    "DuplicateReviewError",
    "AlreadyReviewedError",
    "RemoteUnavailableError",
    "ForbiddenError",
    "QuotaExceededError",
    "wrap_store_errors",
    "error_response",
]
