from rest_framework import serializers

from professional_profile.models import Professional

from .models import Hire


class HireSerializer(serializers.ModelSerializer):
    client_name = serializers.CharField(source="client_display_name", read_only=True)
    professional_name = serializers.SerializerMethodField()
    is_guest = serializers.BooleanField(read_only=True)
    is_open_request = serializers.BooleanField(read_only=True)

    class Meta:
        model = Hire
        fields = [
            "id", "client", "client_name", "professional", "professional_name",
            "status", "proposal_message", "is_guest", "is_open_request",
            "service_category", "service_description", "service_location",
            "accepted_at", "started_at", "rejected_at", "completion_requested_at",
            "completed_at", "cancelled_at", "created_at", "updated_at",
        ]
        read_only_fields = fields

    def get_professional_name(self, obj):
        if obj.professional_id is None:
            return None
        return obj.professional.get_display_name()


class GuestHireSerializer(HireSerializer):
    """Shown to the professional only: carries the link token for the guest."""

    class Meta(HireSerializer.Meta):
        fields = HireSerializer.Meta.fields + [
            "guest_client_name", "guest_client_email", "guest_client_phone",
            "review_token", "reviewed_by_guest",
        ]
        read_only_fields = fields


class ProposalCreateSerializer(serializers.Serializer):
    professional = serializers.PrimaryKeyRelatedField(queryset=Professional.objects.all())
    message = serializers.CharField(required=False, allow_blank=True, default="")
    service_category = serializers.CharField(required=False, allow_blank=True, default="", max_length=100)
    service_description = serializers.CharField(required=False, allow_blank=True, default="")
    service_location = serializers.CharField(required=False, allow_blank=True, default="", max_length=200)


class GuestHireCreateSerializer(serializers.Serializer):
    guest_name = serializers.CharField(max_length=200)
    guest_email = serializers.EmailField(required=False, allow_blank=True, default="")
    guest_phone = serializers.CharField(required=False, allow_blank=True, default="", max_length=30)
    message = serializers.CharField(required=False, allow_blank=True, default="")
    service_category = serializers.CharField(required=False, allow_blank=True, default="", max_length=100)
    service_description = serializers.CharField(required=False, allow_blank=True, default="")
    service_location = serializers.CharField(required=False, allow_blank=True, default="", max_length=200)


class OpenRequestCreateSerializer(serializers.Serializer):
    service_category = serializers.CharField(max_length=100)
    service_description = serializers.CharField()
    service_location = serializers.CharField(required=False, allow_blank=True, default="", max_length=200)
