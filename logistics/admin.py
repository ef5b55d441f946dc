"""
Django Admin configuration for LOGISTICS app.
"""

from django.contrib import admin

from .models import (
    ActorType,
    DispatchAttempt,
    DispatchConfiguration,
    DispatchOffer,
    DispatchState,
    DropPoint,
    Order,
    OrderStatus,
    TrackingEvent,
)


class DropPointInline(admin.TabularInline):
    model = DropPoint
    extra = 0
    fields = ('sequence', 'address', 'lat', 'lng', 'contact_phone', 'status', 'actual_time')
    readonly_fields = ('status', 'actual_time')
    ordering = ('sequence',)


class TrackingEventInline(admin.TabularInline):
    """History is append-only: shown, never edited."""
    model = TrackingEvent
    extra = 0
    fields = ('timestamp', 'status', 'kind', 'actor_type', 'actor_id', 'note')
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin for Order with dispatch and tracking details."""

    list_display = (
        'short_id',
        'order_type',
        'status',
        'dispatch_state',
        'vehicle_type',
        'partner_name',
        'pricing_total',
        'created_at'
    )
    list_filter = ('status', 'dispatch_state', 'order_type', 'vehicle_type', 'created_at')
    search_fields = (
        'id',
        'user__username',
        'partner__phone',
        'pickup_address',
        'pickup_contact_phone'
    )
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'
    inlines = [DropPointInline, TrackingEventInline]

    readonly_fields = (
        'id',
        'status',
        'dispatch_state',
        'dispatch_run',
        'partner',
        'live_lat',
        'live_lng',
        'live_timestamp',
        'route_distance_remaining',
        'route_duration_remaining',
        'route_eta',
        'created_at',
        'assigned_at',
        'picked_at',
        'in_transit_at',
        'delivered_at',
        'cancelled_at'
    )

    fieldsets = (
        ('Identification', {
            'fields': ('id', 'order_type', 'status', 'dispatch_state', 'dispatch_run')
        }),
        ('Actors', {
            'fields': ('user', 'partner', 'vehicle_type')
        }),
        ('Pickup', {
            'fields': (
                'pickup_lat', 'pickup_lng', 'pickup_address', 'pickup_landmark',
                'pickup_contact_name', 'pickup_contact_phone', 'pickup_scheduled_time'
            )
        }),
        ('Package', {
            'fields': ('package', 'requires_signature', 'max_drops', 'route_optimized')
        }),
        ('Pricing & payment', {
            'fields': ('pricing_total', 'pricing_currency', 'payment_method', 'payment_status')
        }),
        ('Live tracking', {
            'fields': (
                'tracking_enabled', 'live_lat', 'live_lng', 'live_timestamp',
                'route_distance_remaining', 'route_duration_remaining', 'route_eta'
            ),
            'classes': ('collapse',)
        }),
        ('History', {
            'fields': (
                'created_at', 'assigned_at', 'picked_at', 'in_transit_at',
                'delivered_at', 'cancelled_at', 'cancellation_reason'
            ),
            'classes': ('collapse',)
        }),
    )

    def short_id(self, obj):
        return obj.short_id
    short_id.short_description = "ID"

    def partner_name(self, obj):
        return obj.partner.name if obj.partner else "-"
    partner_name.short_description = "Partner"

    actions = ['retry_dispatch', 'cancel_orders']

    @admin.action(description="Retry dispatch")
    def retry_dispatch(self, request, queryset):
        from .tasks import start_dispatch

        queued = 0
        for order in queryset.filter(
            status=OrderStatus.PENDING,
            dispatch_state__in=[DispatchState.IDLE, DispatchState.EXHAUSTED]
        ):
            start_dispatch.delay(str(order.id))
            queued += 1
        self.message_user(request, f"Dispatch queued for {queued} order(s).")

    @admin.action(description="Cancel orders")
    def cancel_orders(self, request, queryset):
        from .exceptions import InvalidOrderStateError
        from .services.dispatch import DispatchCoordinator

        coordinator = DispatchCoordinator()
        cancelled = 0
        for order in queryset.filter(status__in=[OrderStatus.PENDING, OrderStatus.ASSIGNED]):
            try:
                coordinator.cancel_order(order.id, ActorType.ADMIN, request.user.pk, "Cancelled by operations")
                cancelled += 1
            except InvalidOrderStateError:
                continue
        self.message_user(request, f"{cancelled} order(s) cancelled.")


class DispatchOfferInline(admin.TabularInline):
    model = DispatchOffer
    extra = 0
    fields = ('rank', 'partner', 'distance_m', 'notified', 'outcome', 'offered_at', 'responded_at')
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(DispatchAttempt)
class DispatchAttemptAdmin(admin.ModelAdmin):
    """Audit of dispatch rounds."""

    list_display = ('order', 'run', 'attempt_number', 'radius_m', 'state', 'deadline', 'created_at')
    list_filter = ('state', 'created_at')
    search_fields = ('order__id',)
    readonly_fields = (
        'id', 'order', 'run', 'attempt_number', 'radius_m', 'state',
        'deadline', 'timer_task_id', 'created_at', 'resolved_at'
    )
    inlines = [DispatchOfferInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(DispatchConfiguration)
class DispatchConfigurationAdmin(admin.ModelAdmin):
    """Singleton: one row, no add once it exists, no delete."""

    fieldsets = (
        ('Escalation', {
            'fields': (
                'initial_radius_m', 'radius_increment_m', 'max_attempts',
                'offer_timeout_seconds', 'max_candidates'
            )
        }),
        ('Eligibility', {
            'fields': ('min_completion_rate', 'min_rating', 'location_freshness_minutes')
        }),
        ('Earnings', {
            'fields': (
                'partner_share_percent', 'peak_hour_bonus', 'long_distance_bonus',
                'long_distance_threshold_km', 'average_speed_kmh'
            )
        }),
        ('Notes', {
            'fields': ('notes', 'updated_at')
        }),
    )
    readonly_fields = ('updated_at',)

    def has_add_permission(self, request):
        return not DispatchConfiguration.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False
