from django.core.exceptions import ValidationError
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from common.exceptions import ForbiddenError, WorkingGoError, error_response

from .serializers import (
    GuestHireCreateSerializer,
    GuestHireSerializer,
    HireSerializer,
    OpenRequestCreateSerializer,
    ProposalCreateSerializer,
)
from .services import HireLifecycleManager


class HireListCreateView(generics.ListCreateAPIView):
    """
    GET: hires where the caller is the client or the professional.
    POST: send a proposal to a professional.
    """
    serializer_class = HireSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        qs = HireLifecycleManager().list_for(self.request.user)
        status_filter = self.request.query_params.get("status")
        if status_filter:
            qs = qs.filter(status=status_filter)
        return qs

    def create(self, request, *args, **kwargs):
        serializer = ProposalCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            hire = HireLifecycleManager().create_proposal(
                request.user,
                data["professional"],
                data["message"],
                service_category=data["service_category"],
                service_description=data["service_description"],
                service_location=data["service_location"],
            )
        except (WorkingGoError, ValidationError) as exc:
            return error_response(exc)
        return Response(HireSerializer(hire).data, status=status.HTTP_201_CREATED)


class HireDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        try:
            hire = HireLifecycleManager().get(pk)
            if not hire.is_party(request.user):
                raise ForbiddenError()
        except WorkingGoError as exc:
            return error_response(exc)
        is_professional = hire.professional_id is not None and request.user.pk == hire.professional.user_id
        serializer_class = GuestHireSerializer if is_professional else HireSerializer
        return Response(serializer_class(hire).data)


class HireTransitionView(APIView):
    """POST /hires/<pk>/<action>/ for every lifecycle move."""

    permission_classes = [permissions.IsAuthenticated]

    actions = {
        "accept": lambda manager, pk, user: manager.respond_to_proposal(pk, True, user),
        "reject": lambda manager, pk, user: manager.respond_to_proposal(pk, False, user),
        "request-completion": lambda manager, pk, user: manager.request_completion(pk, user),
        "reopen": lambda manager, pk, user: manager.reopen(pk, user),
        "complete": lambda manager, pk, user: manager.complete_engagement(pk, user),
        "cancel": lambda manager, pk, user: manager.cancel_engagement(pk, user),
        "claim": lambda manager, pk, user: manager.claim_request(pk, user),
    }

    def post(self, request, pk, action):
        handler = self.actions.get(action)
        if handler is None:
            return Response({"detail": "Unknown action."}, status=status.HTTP_404_NOT_FOUND)
        try:
            hire = handler(HireLifecycleManager(), pk, request.user)
        except (WorkingGoError, ValidationError) as exc:
            return error_response(exc)
        return Response(HireSerializer(hire).data)


class GuestHireCreateView(APIView):
    """A professional records work for someone without an account."""

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        professional = getattr(request.user, "professional_profile", None)
        if professional is None:
            return error_response(ForbiddenError("Only professionals can create guest hires."))

        serializer = GuestHireCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            hire = HireLifecycleManager().create_guest_hire(
                professional,
                data["guest_name"],
                data["guest_email"],
                data["guest_phone"],
                message=data["message"],
                service_category=data["service_category"],
                service_description=data["service_description"],
                service_location=data["service_location"],
            )
        except (WorkingGoError, ValidationError) as exc:
            return error_response(exc)
        return Response(GuestHireSerializer(hire).data, status=status.HTTP_201_CREATED)


class OpenRequestListCreateView(generics.ListCreateAPIView):
    """
    GET: unclaimed requests, filterable with ``?category=``.
    POST: publish a request any professional can take.
    """
    serializer_class = HireSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return HireLifecycleManager().list_open_requests(
            self.request.user, self.request.query_params.get("category")
        )

    def create(self, request, *args, **kwargs):
        serializer = OpenRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            hire = HireLifecycleManager().publish_request(request.user, **serializer.validated_data)
        except (WorkingGoError, ValidationError) as exc:
            return error_response(exc)
        return Response(HireSerializer(hire).data, status=status.HTTP_201_CREATED)
