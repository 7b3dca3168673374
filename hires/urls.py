from django.urls import path

from .views import (
    GuestHireCreateView,
    HireDetailView,
    HireListCreateView,
    HireTransitionView,
    OpenRequestListCreateView,
)

urlpatterns = [
    path('', HireListCreateView.as_view(), name='hire-list-create'),
    path('guest/', GuestHireCreateView.as_view(), name='hire-guest-create'),
    path('requests/', OpenRequestListCreateView.as_view(), name='hire-open-requests'),
    path('<int:pk>/', HireDetailView.as_view(), name='hire-detail'),
    path('<int:pk>/<slug:action>/', HireTransitionView.as_view(), name='hire-transition'),
]
