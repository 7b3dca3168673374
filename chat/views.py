from django.core.exceptions import ValidationError
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.exceptions import WorkingGoError, error_response
from payments.services import message_quota

from . import services
from .serializers import (
    ConversationSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    ResolveConversationSerializer,
)


class ConversationListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        try:
            conversations = services.conversations_for(request.user)
        except WorkingGoError as exc:
            return error_response(exc)
        return Response(ConversationSerializer(conversations, many=True, context={"request": request}).data)


class ResolveConversationView(APIView):
    """Return the conversation with another user, creating it on first contact."""

    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = ResolveConversationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            conversation = services.get_or_create_conversation(
                request.user, serializer.validated_data["other_user_id"]
            )
        except (WorkingGoError, ValidationError) as exc:
            return error_response(exc)
        return Response({"conversation_id": conversation.pk})


class MessageListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, conversation_id, *args, **kwargs):
        try:
            messages = services.list_messages(conversation_id, request.user)
        except WorkingGoError as exc:
            return error_response(exc)
        return Response(MessageSerializer(messages, many=True).data)

    def post(self, request, conversation_id, *args, **kwargs):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            message = services.send_message(
                conversation_id, request.user, serializer.validated_data["content"]
            )
        except (WorkingGoError, ValidationError) as exc:
            return error_response(exc)
        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)


class MarkReadView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, conversation_id, *args, **kwargs):
        try:
            updated = services.mark_read(conversation_id, request.user)
        except WorkingGoError as exc:
            return error_response(exc)
        return Response({"updated": updated})


class MessageQuotaView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, conversation_id, *args, **kwargs):
        try:
            conversation = services.get_conversation_for(conversation_id, request.user)
        except WorkingGoError as exc:
            return error_response(exc)
        return Response(message_quota(request.user, conversation).as_dict())
