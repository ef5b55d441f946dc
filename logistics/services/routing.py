"""
LOGISTICS App - Routing provider client

Thin client over the self-hosted OSRM (routes) and Nominatim (reverse
geocoding) services. Any failure is reported as RouteUnavailable so callers
can drop ETA fields and carry on.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import requests
from django.conf import settings

from logistics.exceptions import RouteUnavailable

logger = logging.getLogger(__name__)


# OSRM profile per vehicle class
PROFILE_BY_VEHICLE = {
    'cycle': 'cycling',
}
DEFAULT_PROFILE = 'driving'


@dataclass
class RouteResult:
    distance_m: float
    duration_s: float
    geometry: List[List[float]] = field(default_factory=list)  # [[lon, lat], ...]


@dataclass
class Address:
    display_name: str
    pincode: str = ''
    city: str = ''


class RoutingClient:
    """
    Usage:
        client = RoutingClient()
        result = client.route((77.20, 28.61), (77.25, 28.63), mode='bike')
    """

    def __init__(self, osrm_base_url: Optional[str] = None,
                 nominatim_base_url: Optional[str] = None,
                 timeout: Optional[int] = None):
        self.osrm_base_url = (osrm_base_url or settings.OSRM_BASE_URL).rstrip('/')
        self.nominatim_base_url = (nominatim_base_url or settings.NOMINATIM_BASE_URL).rstrip('/')
        self.timeout = timeout or settings.ROUTING_TIMEOUT_SECONDS

    def route(self, origin: Sequence[float], destination: Sequence[float],
              mode: str = DEFAULT_PROFILE) -> RouteResult:
        """
        Road route between two [lon, lat] points.

        Args:
            origin: [lon, lat]
            destination: [lon, lat]
            mode: vehicle type or OSRM profile

        Returns:
            RouteResult

        Raises:
            RouteUnavailable: OSRM unreachable or no route
        """
        profile = PROFILE_BY_VEHICLE.get(mode, DEFAULT_PROFILE)
        url = (
            f"{self.osrm_base_url}/route/v1/{profile}/"
            f"{origin[0]},{origin[1]};{destination[0]},{destination[1]}"
        )

        try:
            response = requests.get(
                url,
                params={'overview': 'full', 'geometries': 'geojson'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"[ROUTING] OSRM request failed: {e}")
            raise RouteUnavailable(str(e)) from e

        if data.get('code') != 'Ok' or not data.get('routes'):
            logger.warning(f"[ROUTING] OSRM returned no route: {data.get('code')}")
            raise RouteUnavailable(data.get('message') or data.get('code') or 'no route')

        best = data['routes'][0]
        return RouteResult(
            distance_m=float(best['distance']),
            duration_s=float(best['duration']),
            geometry=best.get('geometry', {}).get('coordinates', []),
        )

    def reverse_geocode(self, point: Sequence[float]) -> Address:
        """
        Address for a [lon, lat] point.

        Raises:
            RouteUnavailable: Nominatim unreachable or nothing found
        """
        try:
            response = requests.get(
                f"{self.nominatim_base_url}/reverse",
                params={'format': 'jsonv2', 'lon': point[0], 'lat': point[1]},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"[ROUTING] Nominatim request failed: {e}")
            raise RouteUnavailable(str(e)) from e

        if 'error' in data or not data.get('display_name'):
            raise RouteUnavailable(data.get('error', 'no address'))

        address = data.get('address', {})
        return Address(
            display_name=data['display_name'],
            pincode=address.get('postcode', ''),
            city=address.get('city') or address.get('town') or address.get('village', ''),
        )
