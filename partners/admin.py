"""
Django Admin configuration for PARTNERS app.
"""

from django.contrib import admin
from django.contrib.gis.admin import GISModelAdmin

from .models import Partner, PartnerStatus


@admin.register(Partner)
class PartnerAdmin(GISModelAdmin):
    """Admin for delivery partners with metrics and last known position."""

    list_display = (
        'name',
        'phone',
        'status',
        'vehicle_type',
        'rating',
        'completion_rate',
        'total_orders',
        'earnings_balance',
        'location_updated_at'
    )
    list_filter = ('status', 'vehicle_type', 'service_city')
    search_fields = ('name', 'phone', 'email', 'vehicle_number')
    ordering = ('name',)

    readonly_fields = (
        'id',
        'current_order',
        'location_accuracy',
        'location_heading',
        'location_speed',
        'location_updated_at',
        'total_orders',
        'completion_rate',
        'cancel_rate',
        'avg_response_time',
        'total_assigned',
        'total_accepted',
        'total_completed',
        'total_cancelled',
        'earnings_balance',
        'created_at',
        'updated_at'
    )

    fieldsets = (
        ('Identity', {
            'fields': ('id', 'user', 'name', 'phone', 'email', 'status', 'device_token')
        }),
        ('Vehicle', {
            'fields': ('vehicle_type', 'vehicle_number', 'service_city')
        }),
        ('Position', {
            'fields': (
                'last_location', 'location_accuracy',
                'location_heading', 'location_speed', 'location_updated_at'
            ),
            'classes': ('collapse',)
        }),
        ('Metrics', {
            'fields': (
                'rating', 'total_orders', 'completion_rate', 'cancel_rate',
                'avg_response_time', 'total_assigned', 'total_accepted',
                'total_completed', 'total_cancelled'
            )
        }),
        ('Work', {
            'fields': ('current_order', 'earnings_balance')
        }),
        ('History', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    actions = ['block_partners', 'unblock_partners']

    @admin.action(description="Block partners")
    def block_partners(self, request, queryset):
        updated = queryset.exclude(status=PartnerStatus.DELETED).update(status=PartnerStatus.BLOCKED)
        self.message_user(request, f"{updated} partner(s) blocked.")

    @admin.action(description="Unblock partners (set offline)")
    def unblock_partners(self, request, queryset):
        updated = queryset.filter(status=PartnerStatus.BLOCKED).update(status=PartnerStatus.OFFLINE)
        self.message_user(request, f"{updated} partner(s) unblocked.")
