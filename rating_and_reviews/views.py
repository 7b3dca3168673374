from django.core.exceptions import ValidationError
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, mixins, permissions, status, viewsets
from rest_framework.response import Response
from rest_framework.views import APIView

from common.exceptions import WorkingGoError, error_response
from professional_profile.models import Professional

from . import services
from .models import Review
from .serializers import (
    ClientReviewSerializer,
    GuestHirePreviewSerializer,
    GuestReviewSerializer,
    ReviewCreateSerializer,
    ReviewSerializer,
)


class ReviewViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, mixins.CreateModelMixin,
                    viewsets.GenericViewSet):
    """
    - list, retrieve: AllowAny, filterable by ?professional= and ?rating=
    - create: the client of a completed hire
    """
    serializer_class = ReviewSerializer
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['professional', 'rating', 'is_guest_review']
    ordering_fields = ['created_at', 'rating']

    def get_permissions(self):
        if self.action == "create":
            return [permissions.IsAuthenticated()]
        return [permissions.AllowAny()]

    def get_queryset(self):
        return Review.objects.select_related("professional__user", "client").order_by("-created_at")

    def create(self, request, *args, **kwargs):
        serializer = ReviewCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            review = services.submit_review(
                data["hire"], request.user, data["rating"], data["comment"], data.get("cost")
            )
        except (WorkingGoError, ValidationError) as exc:
            return error_response(exc)
        return Response(ReviewSerializer(review).data, status=status.HTTP_201_CREATED)


class ReviewableHireView(APIView):
    """Which hire, if any, the caller can review for a professional."""

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, professional_id):
        professional = Professional.objects.filter(pk=professional_id).first()
        if professional is None:
            return Response({"detail": "Professional not found."}, status=status.HTTP_404_NOT_FOUND)
        try:
            hire = services.is_reviewable(request.user, professional)
        except WorkingGoError as exc:
            return error_response(exc)
        return Response({"hire_id": hire.pk if hire else None})


class ClientReviewCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = ReviewCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            client_review = services.submit_client_review(
                data["hire"], request.user, data["rating"], data["comment"]
            )
        except (WorkingGoError, ValidationError) as exc:
            return error_response(exc)
        return Response(ClientReviewSerializer(client_review).data, status=status.HTTP_201_CREATED)


class GuestReviewView(APIView):
    """The link sent to a guest client; the token is the only credential."""

    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def get(self, request, token):
        try:
            hire = services.fetch_hire_by_token(token)
        except WorkingGoError as exc:
            return error_response(exc)
        return Response(GuestHirePreviewSerializer(hire).data)

    def post(self, request, token):
        serializer = GuestReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            review = services.submit_guest_review(
                token, data["rating"], data["comment"], data["reviewer_name"]
            )
        except (WorkingGoError, ValidationError) as exc:
            return error_response(exc)
        return Response(ReviewSerializer(review).data, status=status.HTTP_201_CREATED)
