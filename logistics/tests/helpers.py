"""
Shared fixtures for the dispatch, tracking and completion tests.
"""

import itertools
import math
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from logistics.models import DispatchConfiguration, Order, OrderType
from partners.geo import make_point
from partners.models import Partner, PartnerStatus, VehicleType

User = get_user_model()

# WGS84 ellipsoid
SEMI_MAJOR_AXIS_M = 6378137.0
ECCENTRICITY_SQ = 0.00669437999014

PICKUP_LNG = 77.20
PICKUP_LAT = 28.61

_phones = itertools.count(1000)


def north_of(lat, meters):
    """Latitude `meters` north of `lat` on the same meridian (WGS84)."""
    sin_lat = math.sin(math.radians(lat))
    meridian_radius = (
        SEMI_MAJOR_AXIS_M * (1 - ECCENTRICITY_SQ) / (1 - ECCENTRICITY_SQ * sin_lat ** 2) ** 1.5
    )
    return lat + math.degrees(meters / meridian_radius)


def make_user(username='customer', **kwargs):
    return User.objects.create_user(username=username, password='testpass123', **kwargs)


def make_partner(name='Partner', meters_north=500, vehicle_type=VehicleType.BIKE, **kwargs):
    """Active, well-rated partner with a fresh position near the default pickup."""
    fields = dict(
        name=name,
        phone=f"+9199000{next(_phones)}",
        status=PartnerStatus.ACTIVE,
        vehicle_type=vehicle_type,
        vehicle_number='DL01AB1234',
        rating=4.6,
        completion_rate=0.95,
        device_token=f"token-{name.lower()}",
        last_location=make_point(PICKUP_LNG, north_of(PICKUP_LAT, meters_north)),
        location_updated_at=timezone.now(),
    )
    fields.update(kwargs)
    return Partner.objects.create(**fields)


def make_order(user, vehicle_type=VehicleType.BIKE, drops=None, total='250.00',
               order_type=OrderType.COURIER, **extra):
    if drops is None:
        drops = [{'lat': north_of(PICKUP_LAT, 2000), 'lng': PICKUP_LNG + 0.01, 'address': 'Drop street 1'}]
    return Order.objects.create_order(
        user=user,
        vehicle_type=vehicle_type,
        pickup={'lat': PICKUP_LAT, 'lng': PICKUP_LNG, 'address': 'Connaught Place'},
        drops=drops,
        pricing={'total': total},
        order_type=order_type,
        **extra
    )


def make_config(**overrides):
    """Unsaved configuration with the default tunables."""
    config = DispatchConfiguration(
        initial_radius_m=3000,
        radius_increment_m=1000,
        max_attempts=3,
        offer_timeout_seconds=30,
        max_candidates=5,
        min_completion_rate=0.8,
        min_rating=4.0,
        location_freshness_minutes=30,
        partner_share_percent=Decimal('80.00'),
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


class FakeTimer:
    """Records deadline timers instead of scheduling Celery tasks."""

    def __init__(self):
        self.scheduled = []
        self.cancelled = []

    def schedule(self, attempt_id, seconds):
        task_id = f"timer-{len(self.scheduled) + 1}"
        self.scheduled.append((attempt_id, seconds, task_id))
        return task_id

    def cancel(self, task_id):
        self.cancelled.append(task_id)


class FakeNotifier:
    """Records what would have been pushed."""

    def __init__(self):
        self.offers = []
        self.no_partner_notices = []
        self.status_notices = []
        self.assignments = []

    def offer(self, offer):
        self.offers.append(offer)

    def no_partners(self, order):
        self.no_partner_notices.append(order.id)

    def status_changed(self, order, status):
        self.status_notices.append((order.id, status))

    def assigned(self, order):
        self.assignments.append(order.id)
