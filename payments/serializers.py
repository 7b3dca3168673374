from decimal import Decimal

from rest_framework import serializers

from payments.models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "provider_payment_id",
            "status",
            "amount",
            "currency",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PreferenceRequestSerializer(serializers.Serializer):
    """Both fields fall back to the configured subscription price."""

    currency = serializers.CharField(max_length=8, required=False)
    amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, min_value=Decimal("0.01")
    )
