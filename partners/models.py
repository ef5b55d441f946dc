"""
PARTNERS App - Partner Registry for RELAY

Handles: field partners, vehicle class, rolling performance metrics,
last known position.
"""

import uuid
from decimal import Decimal
from django.conf import settings
from django.contrib.gis.db import models


class PartnerStatus(models.TextChoices):
    """Partner availability status."""
    ACTIVE = 'active', 'Active'
    OFFLINE = 'offline', 'Offline'
    BLOCKED = 'blocked', 'Blocked'
    DELETED = 'deleted', 'Deleted'


class VehicleType(models.TextChoices):
    """Vehicle classes shared by partners and orders."""
    BIKE = 'bike', 'Bike'
    SCOOTER = 'scooter', 'Scooter'
    CYCLE = 'cycle', 'Cycle'
    CAR = 'car', 'Car'
    MINI_TRUCK = 'mini_truck', 'Mini truck'
    LARGE_TRUCK = 'large_truck', 'Large truck'


class Partner(models.Model):
    """
    Independent field partner who accepts and fulfils orders.

    `last_location` is the partner's last known position; `location_updated_at`
    is the staleness timestamp used by dispatch. Metric counters are only
    ever changed with F() expressions (see PartnerRegistry).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='partner_profile',
        verbose_name="Login account"
    )
    name = models.CharField(max_length=150, verbose_name="Name")
    phone = models.CharField(max_length=20, unique=True, verbose_name="Phone")
    email = models.EmailField(blank=True, verbose_name="Email")

    status = models.CharField(
        max_length=10,
        choices=PartnerStatus.choices,
        default=PartnerStatus.OFFLINE,
        verbose_name="Status"
    )
    device_token = models.CharField(
        max_length=255,
        blank=True,
        verbose_name="Push device token"
    )

    # Vehicle
    vehicle_type = models.CharField(
        max_length=20,
        choices=VehicleType.choices,
        verbose_name="Vehicle type"
    )
    vehicle_number = models.CharField(max_length=20, blank=True, verbose_name="Vehicle number")
    service_city = models.CharField(max_length=100, blank=True, verbose_name="Service city")

    # Last known position
    last_location = models.PointField(
        geography=True,
        srid=4326,
        null=True,
        blank=True,
        verbose_name="Last known position"
    )
    location_accuracy = models.FloatField(null=True, blank=True, verbose_name="Accuracy (m)")
    location_heading = models.FloatField(null=True, blank=True, verbose_name="Heading (deg)")
    location_speed = models.FloatField(null=True, blank=True, verbose_name="Speed (m/s)")
    location_updated_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name="Location updated at"
    )

    # Concurrent assignment guard
    current_order = models.ForeignKey(
        'logistics.Order',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name="Current order"
    )

    # Rolling metrics
    rating = models.FloatField(default=0.0, verbose_name="Rating")
    total_orders = models.PositiveIntegerField(default=0, verbose_name="Orders taken")
    completion_rate = models.FloatField(default=0.0, verbose_name="Completion rate")
    cancel_rate = models.FloatField(default=0.0, verbose_name="Cancel rate")
    avg_response_time = models.FloatField(
        default=0.0,
        verbose_name="Average response time (s)"
    )
    total_assigned = models.PositiveIntegerField(default=0)
    total_accepted = models.PositiveIntegerField(default=0)
    total_completed = models.PositiveIntegerField(default=0)
    total_cancelled = models.PositiveIntegerField(default=0)

    earnings_balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Earnings balance"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Partner"
        verbose_name_plural = "Partners"
        ordering = ['name']
        indexes = [
            models.Index(fields=['status', 'vehicle_type'], name='partner_status_vehicle_idx'),
            models.Index(fields=['location_updated_at'], name='partner_location_fresh_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.vehicle_type}, {self.status})"

    @property
    def has_location(self) -> bool:
        return self.last_location is not None

    @property
    def coordinates(self):
        """[lon, lat] or None."""
        if not self.has_location:
            return None
        return [self.last_location.x, self.last_location.y]

    def location_payload(self):
        if not self.has_location:
            return None
        return {
            'lat': self.last_location.y,
            'lng': self.last_location.x,
            'lastUpdated': (
                self.location_updated_at.isoformat() if self.location_updated_at else None
            ),
        }
