from django.urls import path
from .views import (
    NotificationListView,
    NotificationMarkAllReadView,
    NotificationMarkReadView,
    UnreadCountView,
)

urlpatterns = [
    path('', NotificationListView.as_view(), name='notifications-list'),
    path('unread-count/', UnreadCountView.as_view(), name='notifications-unread-count'),
    path('mark-all-read/', NotificationMarkAllReadView.as_view(), name='notifications-mark-all-read'),
    path('<int:id>/mark-read/', NotificationMarkReadView.as_view(), name='notifications-mark-read'),
]
