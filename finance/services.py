"""
FINANCE App - Partner earnings estimates

What a partner is told they will earn when an order is offered to them.
The actual credit happens on delivery through WalletService.credit_delivery.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from django.utils import timezone

from partners.geo import haversine_distance

logger = logging.getLogger(__name__)


# Local hours (inclusive) that earn the peak incentive
PEAK_HOURS = ((8, 10), (18, 20))


def is_peak_hour(moment: Optional[datetime] = None) -> bool:
    moment = timezone.localtime(moment or timezone.now())
    return any(start <= moment.hour <= end for start, end in PEAK_HOURS)


def order_distance_km(order) -> float:
    """Straight-line pickup to first drop distance."""
    first_drop = order.drops.order_by('sequence').first()
    if first_drop is None:
        return 0.0
    return haversine_distance(
        order.pickup_lat, order.pickup_lng, first_drop.lat, first_drop.lng
    ) / 1000


def calculate_earnings(order, config, moment: Optional[datetime] = None) -> Dict[str, Decimal]:
    """
    Earnings estimate for an offer.

    Args:
        order: Order being offered
        config: DispatchConfiguration (share and incentive amounts)
        moment: Reference time for the peak-hour check

    Returns:
        dict with base, incentives and total
    """
    base = (order.pricing_total * config.partner_share_percent / Decimal('100')).quantize(
        Decimal('0.01'), rounding=ROUND_HALF_UP
    )

    incentives = Decimal('0.00')
    if is_peak_hour(moment):
        incentives += config.peak_hour_bonus
    if order_distance_km(order) > config.long_distance_threshold_km:
        incentives += config.long_distance_bonus

    return {
        'base': base,
        'incentives': incentives,
        'total': base + incentives,
    }
