from django.urls import path
from .views import (
    ConversationListView,
    MarkReadView,
    MessageListCreateView,
    MessageQuotaView,
    ResolveConversationView,
)

urlpatterns = [
    path("conversations/", ConversationListView.as_view(), name="conversation_list"),
    path("conversations/resolve/", ResolveConversationView.as_view(), name="conversation_resolve"),
    path("conversations/<int:conversation_id>/messages/", MessageListCreateView.as_view(), name="conversation_messages"),
    path("conversations/<int:conversation_id>/read/", MarkReadView.as_view(), name="conversation_mark_read"),
    path("conversations/<int:conversation_id>/quota/", MessageQuotaView.as_view(), name="conversation_quota"),
]
