"""
Django Admin configuration for NOTIFICATIONS app.
"""

from django.contrib import admin

from .models import UserDevice


@admin.register(UserDevice)
class UserDeviceAdmin(admin.ModelAdmin):
    list_display = ('user', 'device_type', 'name', 'platform', 'app_version', 'is_active', 'last_active')
    list_filter = ('device_type', 'is_active')
    search_fields = ('user__username', 'device_id', 'name')
    readonly_fields = ('created_at', 'last_active')
