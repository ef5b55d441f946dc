"""
PARTNERS App - Geo Index

Radius queries over partner last-known positions, run by the spatial
database (PostGIS in production, SpatiaLite in tests) on the geography
column `Partner.last_location`.
"""

import math
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from django.contrib.gis.db.models.functions import Distance
from django.contrib.gis.geos import Point
from django.contrib.gis.measure import D
from django.db.models import Q, QuerySet

from partners.models import Partner

logger = logging.getLogger(__name__)


# Mean Earth radius in meters
EARTH_RADIUS_M = 6371000.0


def make_point(lng: float, lat: float) -> Point:
    """WGS84 point from longitude/latitude."""
    return Point(float(lng), float(lat), srid=4326)


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two GPS points.

    Used for order legs (pickup to drops), which are plain coordinates
    rather than rows in the spatial index.

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


@dataclass
class GeoHit:
    """A partner found by a radius query."""
    partner: Partner
    distance_m: float


class GeoIndex:
    """
    Spatial query over partner positions.

    Usage:
        hits = GeoIndex().nearby(lng=77.20, lat=28.61, radius_m=3000,
                                 predicate=Q(status='active'))
    """

    def __init__(self, queryset: Optional[QuerySet] = None):
        self.queryset = queryset if queryset is not None else Partner.objects.all()

    def nearby(
        self,
        lng: float,
        lat: float,
        radius_m: float,
        predicate: Optional[Q] = None,
        limit: Optional[int] = None,
        tie_break: Sequence[str] = (),
    ) -> List[GeoHit]:
        """
        Partners within `radius_m` of (lng, lat), nearest first.

        Args:
            lng, lat: Query point
            radius_m: Search radius in meters
            predicate: Extra filter applied in SQL
            limit: Maximum number of hits returned
            tie_break: Extra ordering after distance (e.g. '-rating')

        Returns:
            List of GeoHit sorted by distance
        """
        origin = make_point(lng, lat)

        qs = self.queryset.filter(last_location__isnull=False)
        if predicate is not None:
            qs = qs.filter(predicate)

        qs = qs.annotate(
            distance=Distance('last_location', origin, spheroid=True)
        ).filter(
            distance__lte=D(m=radius_m)
        ).order_by('distance', *tie_break)

        if limit is not None:
            qs = qs[:limit]

        hits = [GeoHit(partner=partner, distance_m=partner.distance.m) for partner in qs]

        logger.debug(
            f"[GEO] {len(hits)} partners within {radius_m:.0f}m of ({lat:.5f}, {lng:.5f})"
        )
        return hits
