"""
PARTNERS App - Partner Registry Service

Status toggle, last-known position and rolling metrics.

Every write here is a single conditional UPDATE on one partner row, so
concurrent dispatch rounds never need a cross-partner lock.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from django.db.models import ExpressionWrapper, F, FloatField, Q, Value
from django.db.models.functions import Greatest
from django.utils import timezone

from partners.geo import GeoHit, GeoIndex, make_point
from partners.models import Partner, PartnerStatus

logger = logging.getLogger(__name__)


class PartnerStatusError(ValueError):
    """Raised when a partner may not change availability."""


# Statuses a partner may set on themselves
SELF_SERVICE_STATUSES = (PartnerStatus.ACTIVE, PartnerStatus.OFFLINE)

# How far ahead of the server a device clock may run before a ping is refused
MAX_CLOCK_SKEW = timedelta(seconds=60)


def ping_timestamp(timestamp: Optional[datetime] = None) -> datetime:
    """Client ping time, never later than the server clock."""
    now = timezone.now()
    if timestamp is None or timestamp > now:
        return now
    return timestamp


def _ratio(numerator, denominator):
    return ExpressionWrapper(
        numerator * Value(1.0) / Greatest(denominator, Value(1)),
        output_field=FloatField(),
    )


class PartnerRegistry:
    """Service class for partner state changes."""

    # ============================================
    # AVAILABILITY
    # ============================================

    @staticmethod
    def set_availability(partner: Partner, status: str) -> Partner:
        """
        Toggle a partner between active and offline.

        Raises:
            PartnerStatusError: If the partner is blocked/deleted or the
                requested status is not self-service
        """
        if status not in SELF_SERVICE_STATUSES:
            raise PartnerStatusError(f"Status must be one of {', '.join(SELF_SERVICE_STATUSES)}")

        updated = Partner.objects.filter(
            pk=partner.pk,
            status__in=SELF_SERVICE_STATUSES,
        ).update(status=status, updated_at=timezone.now())

        if not updated:
            raise PartnerStatusError("Account is blocked or deleted")

        partner.refresh_from_db()
        logger.info(f"[PARTNER] {str(partner.id)[:8]} is now {status}")
        return partner

    # ============================================
    # LOCATION
    # ============================================

    @staticmethod
    def update_location(
        partner_id,
        lat: float,
        lng: float,
        accuracy: Optional[float] = None,
        heading: Optional[float] = None,
        speed: Optional[float] = None,
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """
        Store the partner's last known position.

        Last write wins by timestamp: a ping that is not newer than the
        stored one is ignored. Future timestamps count as "now".

        Returns:
            True if the position was written
        """
        timestamp = ping_timestamp(timestamp)

        updated = Partner.objects.filter(
            Q(location_updated_at__isnull=True) | Q(location_updated_at__lt=timestamp),
            pk=partner_id,
        ).update(
            last_location=make_point(lng, lat),
            location_accuracy=accuracy,
            location_heading=heading,
            location_speed=speed,
            location_updated_at=timestamp,
        )

        if not updated:
            logger.debug(f"[PARTNER] Stale ping ignored for {str(partner_id)[:8]}")
        return bool(updated)

    @staticmethod
    def active_partners_near(lng: float, lat: float, radius_m: float = 5000) -> List[GeoHit]:
        """Active partners around a point, nearest first."""
        return GeoIndex().nearby(
            lng=lng,
            lat=lat,
            radius_m=radius_m,
            predicate=Q(status=PartnerStatus.ACTIVE),
        )

    # ============================================
    # ASSIGNMENT BOOKKEEPING
    # ============================================

    @staticmethod
    def claim_for_order(partner_id, order, response_time_s: float) -> bool:
        """
        Bind `order` as the partner's current order and count the acceptance.

        Compare-and-set on `current_order IS NULL`: a partner can never hold
        two live orders.

        Returns:
            True if the partner was free and is now bound
        """
        updated = Partner.objects.filter(
            pk=partner_id,
            current_order__isnull=True,
        ).update(
            current_order=order,
            total_assigned=F('total_assigned') + 1,
            total_accepted=F('total_accepted') + 1,
            total_orders=F('total_orders') + 1,
            avg_response_time=ExpressionWrapper(
                (F('avg_response_time') * F('total_accepted') + Value(float(response_time_s)))
                / (F('total_accepted') + Value(1)),
                output_field=FloatField(),
            ),
        )
        return bool(updated)

    @staticmethod
    def release_after_reject(partner_id, order) -> bool:
        """Free the partner after they hand an accepted order back."""
        updated = Partner.objects.filter(pk=partner_id, current_order=order).update(
            current_order=None,
            total_cancelled=F('total_cancelled') + 1,
            cancel_rate=_ratio(F('total_cancelled') + 1, F('total_accepted')),
        )
        return bool(updated)

    @staticmethod
    def release(partner_id, order) -> bool:
        """Free the partner without touching metrics (order cancelled upstream)."""
        return bool(
            Partner.objects.filter(pk=partner_id, current_order=order).update(current_order=None)
        )

    @staticmethod
    def record_completion(partner_id, order) -> None:
        """Count a completed order and free the partner."""
        Partner.objects.filter(pk=partner_id).update(
            current_order=None,
            total_completed=F('total_completed') + 1,
            completion_rate=_ratio(F('total_completed') + 1, F('total_orders')),
        )
        logger.info(f"[PARTNER] Completion recorded for {str(partner_id)[:8]}")
