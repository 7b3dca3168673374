"""Best-effort notification dispatch.

``notify`` never raises: the primary operation that triggered it (a proposal,
a review) has already been committed and must not be affected by a failure
here. Failures are logged and recorded in :class:`NotificationFailure`.
"""

from __future__ import annotations

import logging
from typing import Optional

from .models import Notification, NotificationFailure
from .tasks import deliver_notification_task

logger = logging.getLogger(__name__)


# types without an entry render with FALLBACK_TEMPLATE
TEMPLATES = {
    Notification.Type.SOLICITUD_ENVIADA: (
        "Nueva solicitud de {sender}",
        "{sender} te envió una solicitud para {subject}. Revisa el mensaje y acepta si estás interesado.",
    ),
    Notification.Type.SOLICITUD_ACEPTADA: (
        "{sender} aceptó tu solicitud",
        "{sender} ha aceptado tu solicitud. Pronto compartirán datos de contacto para coordinarse.",
    ),
    Notification.Type.SOLICITUD_RECHAZADA: (
        "{sender} rechazó tu solicitud",
        "{sender} no pudo aceptar tu solicitud. Prueba con otro profesional.",
    ),
    Notification.Type.TRABAJO_COMPLETADO: (
        "{sender} solicitó marcar como completado",
        "{sender} considera que el trabajo está completo. Revisa y aprueba si todo está en orden.",
    ),
    Notification.Type.APROBACION_COMPLETADO: (
        "{sender} aprobó la finalización",
        "{sender} marcó el trabajo como completado. El contrato ha finalizado exitosamente.",
    ),
    Notification.Type.MENSAJE_NUEVO: (
        "Mensaje de {sender}",
        "{sender} te envió un mensaje. Abre la app para responder.",
    ),
    Notification.Type.NUEVA_RESENA: (
        "Nueva reseña de {sender}",
        "{sender} te dejó una reseña de {subject} estrellas.",
    ),
}

FALLBACK_TEMPLATE = (
    "Novedades de {sender}",
    "{sender} tiene novedades sobre {subject}.",
)


def render(type_: str, sender_name: str, subject: str = "un trabajo") -> tuple[str, str]:
    """Return ``(title, message)`` for ``type_`` using the shared templates."""

    title, message = TEMPLATES.get(type_, FALLBACK_TEMPLATE)
    context = {"sender": sender_name, "subject": subject}
    return title.format(**context), message.format(**context)


def record_failure(payload: dict, error: Exception | str) -> None:
    """Persist a dispatch failure; a failure to persist is only logged."""

    try:
        NotificationFailure.objects.create(
            type=payload.get("type", ""),
            recipient_id=str(payload.get("recipient_id") or ""),
            payload=payload,
            error=str(error),
        )
    except Exception:
        logger.exception("Could not record notification failure for %s", payload.get("type"))


def notify(
    type_: str,
    recipient_id,
    sender_id,
    title: str,
    message: str,
    related_id=None,
    *,
    related_type: Optional[str] = None,
) -> bool:
    """Queue a notification; returns whether it was handed to the queue."""

    payload = {
        "type": str(type_),
        "recipient_id": recipient_id,
        "sender_id": sender_id,
        "title": title,
        "message": message,
        "related_id": str(related_id) if related_id is not None else None,
        "related_type": related_type,
    }
    try:
        deliver_notification_task.delay(payload)
    except Exception as exc:
        logger.warning("Notification %s to user %s not queued: %s", type_, recipient_id, exc)
        record_failure(payload, exc)
        return False
    return True


def notify_template(
    type_: str,
    recipient,
    sender=None,
    *,
    related_id=None,
    related_type: Optional[str] = None,
    subject: str = "un trabajo",
    sender_name: Optional[str] = None,
) -> bool:
    """Render the standard copy for ``type_`` and dispatch it."""

    if recipient is None:
        return False
    name = sender_name or (sender.get_full_name() if sender is not None else "WorkingGo")
    title, message = render(type_, name, subject=subject)
    return notify(
        type_,
        recipient.pk,
        sender.pk if sender is not None else None,
        title,
        message,
        related_id,
        related_type=related_type,
    )


__all__ = ["FALLBACK_TEMPLATE", "TEMPLATES", "notify", "notify_template", "record_failure", "render"]
