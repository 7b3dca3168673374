from rest_framework import serializers

from .models import Professional


class ProfessionalSerializer(serializers.ModelSerializer):
    user_id = serializers.ReadOnlyField(source='user.id')
    name = serializers.ReadOnlyField(source='get_display_name')
    is_premium = serializers.ReadOnlyField(source='has_premium_visibility')

    class Meta:
        model = Professional
        fields = [
            "id",
            "user_id",
            "name",
            "profession",
            "location",
            "hourly_rate",
            "bio",
            "avatar",
            "rating",
            "rating_count",
            "is_verified",
            "is_premium",
            "created_at",
        ]
        read_only_fields = fields
