from django.conf import settings
from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            'id', 'email', 'full_name', 'is_professional', 'phone', 'address',
            'subscription_type', 'subscription_status',
            'subscription_start_date', 'subscription_end_date', 'date_joined',
        ]
        read_only_fields = [
            'id', 'email', 'is_professional',
            'subscription_type', 'subscription_status',
            'subscription_start_date', 'subscription_end_date', 'date_joined',
        ]


class SessionSerializer(serializers.Serializer):
    """Serializes a :class:`users.session.Session` snapshot."""

    user = UserSerializer(read_only=True)
    professional_id = serializers.SerializerMethodField()
    is_entitled = serializers.BooleanField(read_only=True)
    free_message_limit = serializers.SerializerMethodField()
    fetched_at = serializers.DateTimeField(read_only=True)

    def get_professional_id(self, obj):
        return obj.professional.pk if obj.professional else None

    def get_free_message_limit(self, obj):
        if obj.is_entitled or not obj.user.is_professional:
            return None
        return settings.FREE_MESSAGE_LIMIT


class EmailExistsSerializer(serializers.Serializer):
    email_input = serializers.CharField(max_length=254)


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=8)
    profession = serializers.CharField(write_only=True, required=False, allow_blank=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'password', 'full_name', 'is_professional', 'profession']
        read_only_fields = ['id']

    def validate_email(self, value):
        if User.objects.email_exists(value):
            raise serializers.ValidationError("A user with this email already exists.")
        return value

    def create(self, validated_data):
        # imported here, professional_profile depends on users
        from professional_profile.models import Professional

        profession = validated_data.pop('profession', '')
        password = validated_data.pop('password')
        user = User.objects.create_user(password=password, **validated_data)
        if user.is_professional:
            Professional.objects.create(
                user=user, display_name=user.full_name, profession=profession
            )
        return user
