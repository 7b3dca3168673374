import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken

from common.exceptions import WorkingGoError, error_response
from .serializers import EmailExistsSerializer, RegisterSerializer, SessionSerializer, UserSerializer
from .session import SessionManager
from .throttles import EmailLookupThrottle

User = get_user_model()
logger = logging.getLogger("users")


class RegisterView(generics.GenericAPIView):
    """
    Create an account (and the professional profile when requested) and issue
    a JWT pair so the client can start a session right away.
    """
    serializer_class = RegisterSerializer
    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            user = serializer.save()
        logger.info("User %s registered (professional=%s)", user.pk, user.is_professional)

        refresh = RefreshToken.for_user(user)
        tokens = {
            'access': str(refresh.access_token),
            'refresh': str(refresh)
        }
        return Response(
            {'tokens': tokens, 'user': UserSerializer(user).data},
            status=status.HTTP_201_CREATED,
        )


class MeView(APIView):
    """
    GET: current session snapshot (profile + entitlement), rebuilt on each call.
    PATCH: update the lazily populated contact fields.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, *args, **kwargs):
        try:
            session = SessionManager.for_request(request).refresh()
        except WorkingGoError as exc:
            return error_response(exc)
        return Response(SessionSerializer(session).data)

    def patch(self, request, *args, **kwargs):
        serializer = UserSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data, status=status.HTTP_200_OK)


class EmailExistsView(generics.GenericAPIView):
    """Existence check used by the password-reset flow."""

    serializer_class = EmailExistsSerializer
    permission_classes = [permissions.AllowAny]
    throttle_classes = [EmailLookupThrottle]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        exists = User.objects.email_exists(serializer.validated_data['email_input'])
        return Response({"exists": exists}, status=status.HTTP_200_OK)
