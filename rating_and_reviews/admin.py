from django.contrib import admin

from .models import ClientReview, Review


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ('id', 'hire', 'professional', 'client', 'rating', 'is_guest_review', 'created_at')
    list_filter = ('rating', 'is_guest_review')
    search_fields = ('comment', 'guest_reviewer_name', 'client__email')


@admin.register(ClientReview)
class ClientReviewAdmin(admin.ModelAdmin):
    list_display = ('id', 'hire', 'client', 'professional', 'rating', 'created_at')
    list_filter = ('rating',)
