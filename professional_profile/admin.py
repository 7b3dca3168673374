from django.contrib import admin

from .models import Professional


@admin.register(Professional)
class ProfessionalAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'profession', 'rating', 'rating_count', 'is_active', 'is_verified', 'is_premium')
    list_filter = ('is_active', 'is_verified', 'is_premium', 'profession')
    search_fields = ('user__email', 'display_name', 'profession')
