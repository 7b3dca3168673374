from django.conf import settings
from django.db import models


# ------------------- Conversation -------------------
class Conversation(models.Model):
    """
    Thread between exactly two users, stored as the sorted id pair
    (user_low.id < user_high.id). Created lazily on first contact.
    """
    user_low = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="conversations_as_low",
    )
    user_high = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="conversations_as_high",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user_low", "user_high"], name="unique_conversation_pair")
        ]
        ordering = ["-created_at"]

    @property
    def participant_ids(self):
        return (self.user_low_id, self.user_high_id)

    def has_participant(self, user):
        return getattr(user, "pk", user) in self.participant_ids

    def other_participant_id(self, user):
        user_id = getattr(user, "pk", user)
        return self.user_high_id if user_id == self.user_low_id else self.user_low_id

    def __str__(self):
        return f"Conversation {self.id} ({self.user_low_id}, {self.user_high_id})"


# ------------------- Message -------------------
class Message(models.Model):
    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages"
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_messages",
    )
    content = models.TextField()
    # the only field ever updated after insert
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.sender} @ {self.created_at}: {self.content[:30]}"
