from django.db.models import BooleanField, Case, Value, When
from django.utils import timezone
from rest_framework import generics, permissions

from .models import Professional
from .serializers import ProfessionalSerializer


def visible_professionals():
    """Active professionals, currently entitled (premium) ones first."""

    now = timezone.now()
    return (
        Professional.objects.select_related("user")
        .filter(is_active=True)
        .annotate(
            premium_now=Case(
                When(is_premium=True, subscription_end_date__gt=now, then=Value(True)),
                default=Value(False),
                output_field=BooleanField(),
            )
        )
        .order_by("-premium_now", "-rating", "-rating_count", "id")
    )


class ProfessionalListView(generics.ListAPIView):
    """
    Public directory, optionally filtered by ?profession= and ?location=.
    """
    serializer_class = ProfessionalSerializer
    permission_classes = [permissions.AllowAny]

    def get_queryset(self):
        qs = visible_professionals()
        profession = self.request.query_params.get("profession")
        if profession:
            qs = qs.filter(profession__iexact=profession)
        location = self.request.query_params.get("location")
        if location:
            qs = qs.filter(location__icontains=location)
        return qs


class ProfessionalDetailView(generics.RetrieveAPIView):
    queryset = Professional.objects.select_related("user").filter(is_active=True)
    serializer_class = ProfessionalSerializer
    permission_classes = [permissions.AllowAny]
