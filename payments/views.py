import logging

from django.core.exceptions import ValidationError
from rest_framework import generics, status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.exceptions import WorkingGoError, error_response
from payments import services
from payments.models import Payment
from payments.serializers import PaymentSerializer, PreferenceRequestSerializer

logger = logging.getLogger("payments")


class CreatePreferenceView(APIView):
    """Start a premium checkout; the client is redirected to ``initPoint``."""

    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = PreferenceRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            init_point = services.create_checkout(
                request.user,
                serializer.validated_data.get("currency"),
                serializer.validated_data.get("amount"),
            )
        except (WorkingGoError, ValidationError) as exc:
            return error_response(exc)
        return Response({"initPoint": init_point}, status=status.HTTP_200_OK)


class CancelSubscriptionView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        try:
            user = services.cancel_subscription(request.user)
        except ValidationError as exc:
            return Response({"error": " ".join(exc.messages)}, status=status.HTTP_400_BAD_REQUEST)
        except WorkingGoError as exc:
            return Response({"error": exc.detail}, status=exc.status_code)
        return Response(
            {
                "message": "Subscription cancelled. Premium benefits remain until the end of the paid period.",
                "subscription_end_date": user.subscription_end_date,
            },
            status=status.HTTP_200_OK,
        )


class MercadoPagoWebhookView(APIView):
    """
    Payment notifications from MercadoPago. Unauthenticated; the payment is
    re-read from the provider, so only its id is taken from the request.
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    def _extract(self, request):
        data = request.data if isinstance(request.data, dict) else {}
        event_type = data.get("type") or data.get("topic") or request.query_params.get("type") \
            or request.query_params.get("topic")
        payment_id = (data.get("data") or {}).get("id") if isinstance(data.get("data"), dict) else None
        payment_id = payment_id or request.query_params.get("data.id") or request.query_params.get("id") \
            or data.get("id")
        return event_type, payment_id

    def post(self, request, *args, **kwargs):
        event_type, payment_id = self._extract(request)
        if event_type != "payment":
            logger.info("Ignoring MercadoPago event of type %r", event_type)
            return Response({"detail": "Event ignored."}, status=status.HTTP_200_OK)
        if not payment_id:
            return Response({"detail": "data.id is required."}, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = services.apply_payment_event(payment_id)
        except WorkingGoError as exc:
            # non-2xx makes the provider redeliver later
            return error_response(exc)

        return Response(
            {
                "detail": "Payment processed." if result.applied else "No changes applied.",
                "status": result.payment.status,
                "duplicate": result.duplicate,
            },
            status=status.HTTP_200_OK,
        )


class PaymentHistoryView(generics.ListAPIView):
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return Payment.objects.filter(user=self.request.user).order_by("-created_at")
