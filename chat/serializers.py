from rest_framework import serializers

from .models import Conversation, Message


class MessageSerializer(serializers.ModelSerializer):
    sender_name = serializers.CharField(source="sender.get_full_name", read_only=True)

    class Meta:
        model = Message
        fields = ["id", "conversation", "sender", "sender_name", "content", "read", "created_at"]
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    content = serializers.CharField(allow_blank=True, trim_whitespace=False)


class ResolveConversationSerializer(serializers.Serializer):
    other_user_id = serializers.IntegerField()


class ConversationSerializer(serializers.ModelSerializer):
    """Expects the annotations added by ``services.conversations_for``."""

    other_user = serializers.SerializerMethodField()
    last_message = serializers.CharField(read_only=True, allow_null=True)
    last_message_at = serializers.DateTimeField(read_only=True, allow_null=True)
    unread_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Conversation
        fields = ["id", "other_user", "last_message", "last_message_at", "unread_count", "created_at"]

    def get_other_user(self, obj):
        user = self.context["request"].user
        other = obj.user_high if obj.user_low_id == user.pk else obj.user_low
        return {"id": other.pk, "full_name": other.get_full_name(), "is_professional": other.is_professional}
