"""
LOGISTICS App - Eligibility Filter

Produces the ranked list of partners that may be offered an order.

A partner is eligible when ALL of these hold:
- status is active
- no current order
- vehicle type matches the order
- completion rate and rating strictly above the configured minimums
- location reported within the freshness window
- distance to the pickup within the round's radius

Ranking: nearest first, then higher rating, then faster average response.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from django.db.models import Q
from django.utils import timezone

from logistics.models import DispatchConfiguration, Order
from partners.geo import GeoIndex
from partners.models import Partner, PartnerStatus

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """An eligible partner for one round."""
    partner: Partner
    distance_m: float
    rank: int = 0


def eligibility_predicate(order: Order, config: DispatchConfiguration, now=None) -> Q:
    """Everything except distance, as a SQL filter."""
    now = now or timezone.now()
    fresh_since = now - timedelta(minutes=config.location_freshness_minutes)
    return Q(
        status=PartnerStatus.ACTIVE,
        current_order__isnull=True,
        vehicle_type=order.vehicle_type,
        completion_rate__gt=config.min_completion_rate,
        rating__gt=config.min_rating,
        location_updated_at__gte=fresh_since,
    )


def find_candidates(
    order: Order,
    radius_m: float,
    config: Optional[DispatchConfiguration] = None,
    now=None,
) -> List[Candidate]:
    """
    Ranked eligible partners around the order's pickup point.

    Args:
        order: Order being dispatched
        radius_m: Search radius in meters
        config: Dispatch configuration (defaults to the active one)
        now: Reference time for the freshness window

    Returns:
        Up to `config.max_candidates` candidates; empty list if nobody matches
    """
    config = config or DispatchConfiguration.get_config()

    hits = GeoIndex().nearby(
        lng=order.pickup_lng,
        lat=order.pickup_lat,
        radius_m=radius_m,
        predicate=eligibility_predicate(order, config, now),
        limit=config.max_candidates,
        tie_break=('-rating', 'avg_response_time'),
    )

    candidates = [
        Candidate(partner=hit.partner, distance_m=hit.distance_m, rank=rank)
        for rank, hit in enumerate(hits, start=1)
    ]

    logger.info(
        f"[DISPATCH] Order {order.short_id}: {len(candidates)} eligible partners "
        f"within {radius_m}m"
    )
    return candidates
