from django.urls import path, include
from rest_framework.routers import SimpleRouter

from .views import ClientReviewCreateView, GuestReviewView, ReviewableHireView, ReviewViewSet

router = SimpleRouter()
router.register(r"", ReviewViewSet, basename="reviews")

urlpatterns = [
    path("guest/<str:token>/", GuestReviewView.as_view(), name="guest-review"),
    path("client/", ClientReviewCreateView.as_view(), name="client-review-create"),
    path("reviewable/<int:professional_id>/", ReviewableHireView.as_view(), name="reviewable-hire"),
    path("", include(router.urls)),
]
