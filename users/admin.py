from django.contrib import admin

from .models import User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('id', 'email', 'full_name', 'is_professional', 'subscription_type', 'subscription_status', 'subscription_end_date')
    list_filter = ('is_professional', 'subscription_type', 'subscription_status')
    search_fields = ('email', 'full_name', 'phone')
