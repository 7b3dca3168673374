from rest_framework import serializers
from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = [
            "id",
            "user",
            "sender",
            "type",
            "title",
            "message",
            "related_id",
            "related_type",
            "status",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
