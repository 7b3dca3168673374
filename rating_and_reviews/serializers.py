from rest_framework import serializers

from .models import ClientReview, Review


class ReviewSerializer(serializers.ModelSerializer):
    reviewer_name = serializers.CharField(read_only=True)
    professional_name = serializers.CharField(source="professional.get_display_name", read_only=True)
    short_comment = serializers.SerializerMethodField(read_only=True)

    class Meta:
        model = Review
        fields = [
            "id", "hire", "professional", "professional_name", "client", "reviewer_name",
            "rating", "comment", "short_comment", "cost", "is_guest_review", "created_at",
        ]
        read_only_fields = fields

    def get_short_comment(self, obj):
        if obj.comment:
            return obj.comment[:50] + "..." if len(obj.comment) > 50 else obj.comment
        return ""


class ReviewCreateSerializer(serializers.Serializer):
    hire = serializers.IntegerField()
    rating = serializers.IntegerField()
    comment = serializers.CharField(required=False, allow_blank=True, default="")
    cost = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)

    def validate_rating(self, value):
        if not 1 <= value <= 5:
            raise serializers.ValidationError("Rating must be between 1 and 5.")
        return value


class ClientReviewSerializer(serializers.ModelSerializer):
    class Meta:
        model = ClientReview
        fields = ["id", "hire", "client", "professional", "rating", "comment", "created_at"]
        read_only_fields = fields


class GuestReviewSerializer(serializers.Serializer):
    rating = serializers.IntegerField()
    comment = serializers.CharField(required=False, allow_blank=True, default="")
    reviewer_name = serializers.CharField(required=False, allow_blank=True, default="", max_length=200)

    def validate_rating(self, value):
        if not 1 <= value <= 5:
            raise serializers.ValidationError("Rating must be between 1 and 5.")
        return value


class GuestHirePreviewSerializer(serializers.Serializer):
    """What a guest sees before reviewing: never the token or contact data."""

    id = serializers.IntegerField()
    professional = serializers.IntegerField(source="professional_id")
    professional_name = serializers.CharField(source="professional.get_display_name")
    guest_client_name = serializers.CharField()
    service_category = serializers.CharField()
    service_description = serializers.CharField()
    status = serializers.CharField()
