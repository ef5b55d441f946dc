"""
LOGISTICS App - Order Store for RELAY

Handles: Orders, Drop points, Tracking history, Dispatch rounds & offers,
Dispatch configuration
"""

import uuid
from decimal import Decimal
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from partners.models import VehicleType


class OrderType(models.TextChoices):
    """Order variant."""
    COURIER = 'courier', 'Courier'
    PICKUP_DROP = 'pickup_drop', 'Pickup & drop'


class OrderStatus(models.TextChoices):
    """Order lifecycle status."""
    PENDING = 'pending', 'Pending'
    ASSIGNED = 'assigned', 'Partner assigned'
    PICKED = 'picked', 'Picked up'
    IN_TRANSIT = 'in_transit', 'In transit'
    DELIVERED = 'delivered', 'Delivered'
    CANCELLED = 'cancelled', 'Cancelled'


# Allowed forward edges. The only backward edge (assigned -> pending on
# partner rejection) goes through DispatchCoordinator.reject_assignment.
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: (OrderStatus.ASSIGNED, OrderStatus.CANCELLED),
    OrderStatus.ASSIGNED: (OrderStatus.PICKED, OrderStatus.CANCELLED),
    OrderStatus.PICKED: (OrderStatus.IN_TRANSIT,),
    OrderStatus.IN_TRANSIT: (OrderStatus.DELIVERED,),
    OrderStatus.DELIVERED: (),
    OrderStatus.CANCELLED: (),
}

# Statuses in which a partner is bound and tracking is live
TRACKABLE_STATUSES = (OrderStatus.ASSIGNED, OrderStatus.PICKED, OrderStatus.IN_TRANSIT)

TERMINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class DispatchState(models.TextChoices):
    """Where the order sits in the dispatch process."""
    IDLE = 'idle', 'Not dispatching'
    SEARCHING = 'searching', 'Searching'
    OFFER_OUTSTANDING = 'offer_outstanding', 'Offer outstanding'
    ASSIGNED = 'assigned', 'Assigned'
    EXHAUSTED = 'exhausted', 'No partner found'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    COMPLETED = 'completed', 'Completed'
    FAILED = 'failed', 'Failed'
    REFUNDED = 'refunded', 'Refunded'


class PaymentMethod(models.TextChoices):
    CASH = 'cash', 'Cash'
    CARD = 'card', 'Card'
    UPI = 'upi', 'UPI'
    WALLET = 'wallet', 'Wallet'


class ActorType(models.TextChoices):
    """Who caused a history entry."""
    SYSTEM = 'system', 'System'
    PARTNER = 'partner', 'Partner'
    ADMIN = 'admin', 'Admin'
    USER = 'user', 'User'


class OrderManager(models.Manager):

    @transaction.atomic
    def create_order(self, user, vehicle_type, pickup, drops, pricing,
                     order_type=OrderType.COURIER, **extra):
        """
        Create a pending order with its drop points.

        Drops receive sequence numbers 1..N in the order given.

        Args:
            user: Owning user
            vehicle_type: VehicleType value
            pickup: dict with lat, lng and optional address, landmark,
                pincode, contact_name, contact_phone, scheduled_time
            drops: non-empty list of dicts shaped like `pickup`
            pricing: dict with total and optional base, distance, weight,
                surge, tax, currency, breakdown
            order_type: OrderType value
            **extra: any other Order field (package, payment_method, ...)

        Returns:
            Order instance
        """
        if not drops:
            raise ValidationError("An order needs at least one drop point")

        if order_type == OrderType.COURIER and len(drops) != 1:
            raise ValidationError("Courier orders have exactly one drop point")

        max_drops = extra.get('max_drops', 5)
        if order_type == OrderType.PICKUP_DROP and len(drops) > max_drops:
            raise ValidationError(f"At most {max_drops} drop points allowed")

        order = self.create(
            user=user,
            order_type=order_type,
            vehicle_type=vehicle_type,
            pickup_lat=pickup['lat'],
            pickup_lng=pickup['lng'],
            pickup_address=pickup.get('address', ''),
            pickup_landmark=pickup.get('landmark', ''),
            pickup_pincode=pickup.get('pincode', ''),
            pickup_contact_name=pickup.get('contact_name', ''),
            pickup_contact_phone=pickup.get('contact_phone', ''),
            pickup_scheduled_time=pickup.get('scheduled_time'),
            pricing_total=Decimal(str(pricing['total'])),
            pricing_base=Decimal(str(pricing.get('base', 0))),
            pricing_distance=Decimal(str(pricing.get('distance', 0))),
            pricing_weight=Decimal(str(pricing.get('weight', 0))),
            pricing_surge=Decimal(str(pricing.get('surge', 0))),
            pricing_tax=Decimal(str(pricing.get('tax', 0))),
            pricing_currency=pricing.get('currency', 'INR'),
            pricing_breakdown=pricing.get('breakdown', {}),
            **extra
        )

        DropPoint.objects.bulk_create([
            DropPoint(
                order=order,
                sequence=index,
                lat=drop['lat'],
                lng=drop['lng'],
                address=drop.get('address', ''),
                landmark=drop.get('landmark', ''),
                pincode=drop.get('pincode', ''),
                contact_name=drop.get('contact_name', ''),
                contact_phone=drop.get('contact_phone', ''),
                scheduled_time=drop.get('scheduled_time'),
            )
            for index, drop in enumerate(drops, start=1)
        ])
        return order


class Order(models.Model):
    """
    Core order model (courier or pickup-drop).

    `status` is only changed through conditional UPDATEs in the dispatch,
    tracking and completion services, never by saving a stale instance.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order_type = models.CharField(
        max_length=20,
        choices=OrderType.choices,
        default=OrderType.COURIER,
        verbose_name="Type"
    )

    # Actors
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='orders',
        verbose_name="Customer"
    )
    partner = models.ForeignKey(
        'partners.Partner',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='orders',
        verbose_name="Partner"
    )

    # Status
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        verbose_name="Status"
    )
    dispatch_state = models.CharField(
        max_length=20,
        choices=DispatchState.choices,
        default=DispatchState.IDLE,
        verbose_name="Dispatch state"
    )
    dispatch_run = models.PositiveIntegerField(
        default=0,
        verbose_name="Dispatch run",
        help_text="Incremented each time a dispatch process starts for this order"
    )
    vehicle_type = models.CharField(
        max_length=20,
        choices=VehicleType.choices,
        verbose_name="Vehicle type"
    )

    # Pickup
    pickup_lat = models.FloatField(verbose_name="Pickup latitude")
    pickup_lng = models.FloatField(verbose_name="Pickup longitude")
    pickup_address = models.CharField(max_length=255, blank=True, verbose_name="Pickup address")
    pickup_landmark = models.CharField(max_length=255, blank=True)
    pickup_pincode = models.CharField(max_length=12, blank=True)
    pickup_contact_name = models.CharField(max_length=150, blank=True)
    pickup_contact_phone = models.CharField(max_length=20, blank=True)
    pickup_scheduled_time = models.DateTimeField(null=True, blank=True)
    pickup_actual_time = models.DateTimeField(null=True, blank=True)

    # Package
    package = models.JSONField(
        default=dict,
        blank=True,
        verbose_name="Package details",
        help_text="type, weight, dimensions, value, description"
    )

    # Pricing (computed by order intake)
    pricing_base = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    pricing_distance = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    pricing_weight = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    pricing_surge = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    pricing_tax = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    pricing_total = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        verbose_name="Total price"
    )
    pricing_currency = models.CharField(max_length=3, default='INR')
    pricing_breakdown = models.JSONField(default=dict, blank=True)

    # Payment
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CASH
    )
    payment_transaction_id = models.CharField(max_length=100, blank=True)
    payment_paid_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True
    )

    # Live tracking projection
    tracking_enabled = models.BooleanField(default=False, verbose_name="Live tracking on")
    live_lat = models.FloatField(null=True, blank=True)
    live_lng = models.FloatField(null=True, blank=True)
    live_timestamp = models.DateTimeField(null=True, blank=True, verbose_name="Last ping at")
    live_accuracy = models.FloatField(null=True, blank=True)
    live_speed = models.FloatField(null=True, blank=True)
    live_bearing = models.FloatField(null=True, blank=True)

    # Route projection
    planned_path = models.JSONField(default=list, blank=True, help_text="[[lon, lat], ...]")
    route_distance_planned = models.FloatField(null=True, blank=True, verbose_name="Planned distance (m)")
    route_distance_remaining = models.FloatField(null=True, blank=True, verbose_name="Remaining distance (m)")
    route_duration_remaining = models.FloatField(null=True, blank=True, verbose_name="Remaining duration (s)")
    route_eta = models.DateTimeField(null=True, blank=True, verbose_name="ETA")
    route_refreshed_at = models.DateTimeField(null=True, blank=True)

    # Variant fields
    requires_signature = models.BooleanField(default=False, verbose_name="Signature required")
    max_drops = models.PositiveSmallIntegerField(default=5, verbose_name="Max drops")
    route_optimized = models.BooleanField(default=False, verbose_name="Route optimized")

    # Post-hoc attachments
    ratings = models.JSONField(default=dict, blank=True)
    issues = models.JSONField(default=list, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    assigned_at = models.DateTimeField(null=True, blank=True)
    picked_at = models.DateTimeField(null=True, blank=True)
    in_transit_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    objects = OrderManager()

    class Meta:
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='order_status_created_idx'),
            models.Index(fields=['dispatch_state'], name='order_dispatch_state_idx'),
            models.Index(fields=['partner', 'status'], name='order_partner_status_idx'),
            models.Index(fields=['user', 'created_at'], name='order_user_created_idx'),
        ]

    def __str__(self):
        return f"Order #{str(self.id)[:8]} - {self.get_status_display()}"

    @property
    def short_id(self) -> str:
        return str(self.id)[:8]

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in ORDER_TRANSITIONS.get(self.status, ())

    def validate_drop_sequences(self):
        """Drop sequences must be exactly 1..N."""
        sequences = sorted(self.drops.values_list('sequence', flat=True))
        if sequences != list(range(1, len(sequences) + 1)):
            raise ValidationError(f"Drop sequences are not dense from 1: {sequences}")

    # ============================================
    # Projections
    # ============================================

    def current_location_payload(self):
        if self.live_timestamp is None:
            return None
        payload = {
            'coordinates': [self.live_lng, self.live_lat],
            'timestamp': self.live_timestamp.isoformat(),
        }
        for key, value in (
            ('accuracy', self.live_accuracy),
            ('speed', self.live_speed),
            ('bearing', self.live_bearing),
        ):
            if value is not None:
                payload[key] = value
        return payload

    def route_payload(self):
        if not self.planned_path and self.route_distance_planned is None:
            return None
        route = {
            'plannedPath': self.planned_path,
            'distance': {'planned': self.route_distance_planned},
        }
        if self.route_eta:
            route['eta'] = self.route_eta.isoformat()
        return route

    def tracking_payload(self):
        """Full tracking projection plus durable history."""
        live = {'isEnabled': self.tracking_enabled}
        current = self.current_location_payload()
        if current:
            live['currentLocation'] = current
        route = self.route_payload()
        if route:
            live['route'] = route
        return {
            'liveTracking': live,
            'history': [event.as_history_entry() for event in self.history.all()],
        }


class DropStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    DELIVERED = 'delivered', 'Delivered'


class DropPoint(models.Model):
    """One delivery stop of an order. Sequence is dense from 1."""

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='drops',
        verbose_name="Order"
    )
    sequence = models.PositiveSmallIntegerField(verbose_name="Sequence")

    lat = models.FloatField()
    lng = models.FloatField()
    address = models.CharField(max_length=255, blank=True)
    landmark = models.CharField(max_length=255, blank=True)
    pincode = models.CharField(max_length=12, blank=True)
    contact_name = models.CharField(max_length=150, blank=True)
    contact_phone = models.CharField(max_length=20, blank=True)

    status = models.CharField(
        max_length=20,
        choices=DropStatus.choices,
        default=DropStatus.PENDING
    )
    scheduled_time = models.DateTimeField(null=True, blank=True)
    actual_time = models.DateTimeField(null=True, blank=True)
    proof = models.JSONField(
        null=True,
        blank=True,
        verbose_name="Proof of delivery",
        help_text="photos, signature, otp, receiverName, receiverRelation, location, notes"
    )

    class Meta:
        verbose_name = "Drop point"
        verbose_name_plural = "Drop points"
        ordering = ['order', 'sequence']
        constraints = [
            models.UniqueConstraint(fields=['order', 'sequence'], name='unique_drop_sequence'),
            models.CheckConstraint(condition=models.Q(sequence__gte=1), name='drop_sequence_from_one'),
        ]

    def __str__(self):
        return f"Drop {self.sequence} of #{str(self.order_id)[:8]}"


class TrackingEventKind(models.TextChoices):
    STATUS_CHANGE = 'status_change', 'Status change'
    LOCATION_UPDATE = 'location_update', 'Location update'


class TrackingEventManager(models.Manager):

    def append(self, order, status, actor_type, actor_id='', note='', location=None,
               kind=TrackingEventKind.STATUS_CHANGE):
        """
        Append an entry to the order's history.

        The timestamp never goes below the latest existing entry, so history
        stays non-decreasing even if clocks disagree between workers.
        """
        now = timezone.now()
        last = self.filter(order=order).order_by('-timestamp').values_list('timestamp', flat=True).first()
        if last is not None and last > now:
            now = last

        lng, lat = (location or (None, None))
        return self.create(
            order=order,
            kind=kind,
            status=status,
            timestamp=now,
            location_lat=lat,
            location_lng=lng,
            note=note or '',
            actor_type=actor_type,
            actor_id=str(actor_id or ''),
        )


class TrackingEvent(models.Model):
    """
    Immutable history entry. Rows are only ever inserted.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='history',
        verbose_name="Order"
    )
    kind = models.CharField(
        max_length=20,
        choices=TrackingEventKind.choices,
        default=TrackingEventKind.STATUS_CHANGE
    )
    status = models.CharField(max_length=20, choices=OrderStatus.choices)
    timestamp = models.DateTimeField(db_index=True)
    location_lat = models.FloatField(null=True, blank=True)
    location_lng = models.FloatField(null=True, blank=True)
    note = models.CharField(max_length=255, blank=True)
    actor_type = models.CharField(max_length=10, choices=ActorType.choices)
    actor_id = models.CharField(max_length=64, blank=True)

    objects = TrackingEventManager()

    class Meta:
        verbose_name = "Tracking event"
        verbose_name_plural = "Tracking events"
        ordering = ['timestamp', 'id']

    def __str__(self):
        return f"#{str(self.order_id)[:8]} {self.status} @ {self.timestamp:%H:%M:%S}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Tracking history is append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Tracking history is append-only")

    def as_history_entry(self):
        entry = {
            'status': self.status,
            'timestamp': self.timestamp.isoformat(),
            'updatedBy': {'type': self.actor_type, 'id': self.actor_id or None},
        }
        if self.location_lat is not None and self.location_lng is not None:
            entry['location'] = [self.location_lng, self.location_lat]
        if self.note:
            entry['note'] = self.note
        return entry


# ============================================
# DISPATCH ROUNDS
# ============================================

class AttemptState(models.TextChoices):
    SEARCHING = 'searching', 'Searching'
    OFFER_OUTSTANDING = 'offer_outstanding', 'Offer outstanding'
    ACCEPTED = 'accepted', 'Accepted'
    EXPIRED = 'expired', 'Expired'
    NO_CANDIDATES = 'no_candidates', 'No candidates'
    ABANDONED = 'abandoned', 'Abandoned'


class DispatchAttempt(models.Model):
    """
    One offer round: a search radius, its candidate set and a deadline.
    Kept after the round resolves for audit.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='dispatch_attempts'
    )
    run = models.PositiveIntegerField(default=1)
    attempt_number = models.PositiveSmallIntegerField(verbose_name="Attempt (0-based)")
    radius_m = models.PositiveIntegerField(verbose_name="Search radius (m)")
    state = models.CharField(
        max_length=20,
        choices=AttemptState.choices,
        default=AttemptState.SEARCHING
    )
    deadline = models.DateTimeField(null=True, blank=True)
    timer_task_id = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Dispatch attempt"
        verbose_name_plural = "Dispatch attempts"
        ordering = ['order', 'run', 'attempt_number']
        constraints = [
            models.UniqueConstraint(
                fields=['order', 'run', 'attempt_number'],
                name='unique_dispatch_attempt'
            ),
        ]

    def __str__(self):
        return (
            f"#{str(self.order_id)[:8]} run {self.run} attempt {self.attempt_number} "
            f"({self.radius_m}m, {self.state})"
        )


class OfferOutcome(models.TextChoices):
    PENDING = 'pending', 'Pending'
    WON = 'won', 'Won'
    LOST = 'lost', 'Lost'
    EXPIRED = 'expired', 'Expired'


class DispatchOffer(models.Model):
    """A candidate partner offered the order in a round."""

    attempt = models.ForeignKey(
        DispatchAttempt,
        on_delete=models.CASCADE,
        related_name='offers'
    )
    partner = models.ForeignKey(
        'partners.Partner',
        on_delete=models.CASCADE,
        related_name='dispatch_offers'
    )
    rank = models.PositiveSmallIntegerField()
    distance_m = models.FloatField()
    notified = models.BooleanField(default=False)
    outcome = models.CharField(
        max_length=10,
        choices=OfferOutcome.choices,
        default=OfferOutcome.PENDING
    )
    offered_at = models.DateTimeField(auto_now_add=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Dispatch offer"
        verbose_name_plural = "Dispatch offers"
        ordering = ['attempt', 'rank']
        constraints = [
            models.UniqueConstraint(fields=['attempt', 'partner'], name='unique_offer_per_round'),
        ]

    def __str__(self):
        return f"Offer #{self.rank} to {self.partner_id} ({self.outcome})"


# ============================================
# DISPATCH CONFIGURATION (Admin-Configurable)
# ============================================

class DispatchConfiguration(models.Model):
    """
    Singleton with the dispatch tunables.

    Only ONE instance exists (enforced by save()). Cached for 10 minutes.
    """

    class Meta:
        verbose_name = "Dispatch configuration"
        verbose_name_plural = "Dispatch configuration"

    # ---- Escalation ----
    initial_radius_m = models.PositiveIntegerField(
        default=3000,
        verbose_name="Initial radius (m)"
    )
    radius_increment_m = models.PositiveIntegerField(
        default=1000,
        verbose_name="Radius increment (m)",
        help_text="Added to the radius after each failed round"
    )
    max_attempts = models.PositiveSmallIntegerField(
        default=3,
        verbose_name="Max rounds"
    )
    offer_timeout_seconds = models.PositiveIntegerField(
        default=30,
        verbose_name="Offer deadline (s)"
    )
    max_candidates = models.PositiveSmallIntegerField(
        default=5,
        verbose_name="Partners offered per round"
    )

    # ---- Eligibility ----
    min_completion_rate = models.FloatField(
        default=0.8,
        verbose_name="Minimum completion rate",
        help_text="Strictly greater than"
    )
    min_rating = models.FloatField(
        default=4.0,
        verbose_name="Minimum rating",
        help_text="Strictly greater than"
    )
    location_freshness_minutes = models.PositiveIntegerField(
        default=30,
        verbose_name="Location freshness (min)"
    )

    # ---- Earnings ----
    partner_share_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('80.00'),
        verbose_name="Partner share (%)"
    )
    peak_hour_bonus = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        default=Decimal('50.00'),
        verbose_name="Peak hour incentive"
    )
    long_distance_bonus = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        default=Decimal('100.00'),
        verbose_name="Long distance incentive"
    )
    long_distance_threshold_km = models.FloatField(
        default=10.0,
        verbose_name="Long distance threshold (km)"
    )
    average_speed_kmh = models.FloatField(
        default=25.0,
        verbose_name="Average speed (km/h)",
        help_text="Used for the pickup ETA shown in offers"
    )

    updated_at = models.DateTimeField(auto_now=True)
    notes = models.TextField(blank=True)

    def __str__(self):
        return "Dispatch configuration"

    def radius_for_attempt(self, attempt: int) -> int:
        return self.initial_radius_m + self.radius_increment_m * attempt

    def save(self, *args, **kwargs):
        """Enforce singleton pattern."""
        self.pk = 1
        super().save(*args, **kwargs)
        from django.core.cache import cache
        cache.delete('dispatch_configuration')

    @classmethod
    def get_config(cls):
        """
        Get the active dispatch configuration, creating defaults if needed.
        """
        from django.core.cache import cache

        config = cache.get('dispatch_configuration')
        if config is None:
            config, _ = cls.objects.get_or_create(pk=1)
            cache.set('dispatch_configuration', config, 600)
        return config
