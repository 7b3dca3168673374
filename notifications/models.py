from django.db import models

from users.models import User


class Notification(models.Model):
    """
    Lightweight record telling a counterparty that something happened.
    Written by the dispatcher task only; read by the notifications API.
    """

    class Type(models.TextChoices):
        GENERAL = "general", "General"
        SOLICITUD_ENVIADA = "solicitud_enviada", "Solicitud enviada"
        SOLICITUD_ACEPTADA = "solicitud_aceptada", "Solicitud aceptada"
        SOLICITUD_RECHAZADA = "solicitud_rechazada", "Solicitud rechazada"
        TRABAJO_COMPLETADO = "trabajo_completado", "Trabajo completado"
        APROBACION_COMPLETADO = "aprobacion_completado", "Aprobación completado"
        MENSAJE_NUEVO = "mensaje_nuevo", "Mensaje nuevo"
        CONTACTO_COMPARTIDO = "contacto_compartido", "Contacto compartido"
        NUEVA_RESENA = "nueva_resena", "Nueva reseña"

    class Status(models.TextChoices):
        UNREAD = "unread", "Unread"
        READ = "read", "Read"

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="notifications")
    sender = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_notifications",
    )
    type = models.CharField(max_length=50, choices=Type.choices, default=Type.GENERAL)
    title = models.CharField(max_length=200)
    message = models.TextField()
    related_id = models.CharField(max_length=64, blank=True, null=True)
    related_type = models.CharField(max_length=30, blank=True, null=True)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.UNREAD)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.user} - {self.title}"


class NotificationFailure(models.Model):
    """Failure log of the best-effort dispatcher."""

    type = models.CharField(max_length=50)
    recipient_id = models.CharField(max_length=64, blank=True, null=True)
    payload = models.JSONField(default=dict, blank=True)
    error = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"NotificationFailure {self.type} -> {self.recipient_id} @ {self.created_at}"
