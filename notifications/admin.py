from django.contrib import admin
from .models import Notification, NotificationFailure


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'type', 'title', 'status', 'created_at')
    list_filter = ('type', 'status', 'created_at')
    search_fields = ('user__email', 'title', 'message')


@admin.register(NotificationFailure)
class NotificationFailureAdmin(admin.ModelAdmin):
    list_display = ('id', 'type', 'recipient_id', 'created_at')
    list_filter = ('type',)
    readonly_fields = ('type', 'recipient_id', 'payload', 'error', 'created_at')
