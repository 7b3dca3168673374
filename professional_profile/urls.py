from django.urls import path
from .views import ProfessionalListView, ProfessionalDetailView

urlpatterns = [
    path('', ProfessionalListView.as_view(), name='professional-list'),
    path('<int:pk>/', ProfessionalDetailView.as_view(), name='professional-detail'),
]
