from django.contrib import admin

from .models import Hire


@admin.register(Hire)
class HireAdmin(admin.ModelAdmin):
    list_display = ('id', 'client', 'guest_client_name', 'professional', 'status', 'created_at')
    list_filter = ('status', 'reviewed_by_guest')
    search_fields = ('client__email', 'guest_client_name', 'professional__display_name')
    readonly_fields = ('review_token', 'created_at', 'updated_at')
