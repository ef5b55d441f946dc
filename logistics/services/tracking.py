"""
LOGISTICS App - Tracking Ingest for RELAY

Location pings update the order's live projection (last write wins by
timestamp) and never touch history. Status transitions append to history
and refresh the remaining distance/ETA projection.

Writes are only accepted while the order is assigned, picked or in transit.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from logistics import events
from logistics.exceptions import (
    InvalidOrderStateError,
    InvalidTransition,
    PartnerMismatchError,
    RouteUnavailable,
)
from logistics.models import (
    ActorType,
    DropStatus,
    Order,
    OrderStatus,
    OrderType,
    TRACKABLE_STATUSES,
    TrackingEvent,
)
from logistics.services.routing import RoutingClient
from notifications.gateway import NotificationGateway
from partners.services import PartnerRegistry, ping_timestamp

logger = logging.getLogger(__name__)


# Statuses a partner reports through tracking. Delivery needs proof and goes
# through CompletionService.
TIMESTAMP_FIELDS = {
    OrderStatus.PICKED: 'picked_at',
    OrderStatus.IN_TRANSIT: 'in_transit_at',
}


def validate_coordinates(coords: Sequence[float]):
    """[lon, lat] -> (lon, lat) as floats, or ValueError."""
    try:
        lng, lat = float(coords[0]), float(coords[1])
    except (TypeError, ValueError, IndexError):
        raise ValueError("Coordinates must be [longitude, latitude]")
    if not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
        raise ValueError("Coordinates out of range")
    return lng, lat


class TrackingService:

    def __init__(self, routing: Optional[RoutingClient] = None, notifier=None):
        self.routing = routing or RoutingClient()
        self.notifier = notifier or NotificationGateway()

    # ============================================
    # LOCATION PINGS
    # ============================================

    def record_location(
        self,
        order_id,
        partner_id,
        coords: Sequence[float],
        accuracy: Optional[float] = None,
        speed: Optional[float] = None,
        bearing: Optional[float] = None,
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """
        Store the partner's position on the order's live projection.

        A ping not newer than the stored one is a no-op. A timestamp ahead of
        the server clock is capped at now.

        Returns:
            True if the projection changed

        Raises:
            InvalidOrderStateError: order is not assigned/picked/in transit
            PartnerMismatchError: partner is not the one carrying the order
        """
        lng, lat = validate_coordinates(coords)
        timestamp = ping_timestamp(timestamp)

        updated = Order.objects.filter(
            Q(live_timestamp__isnull=True) | Q(live_timestamp__lt=timestamp),
            pk=order_id,
            partner_id=partner_id,
            status__in=TRACKABLE_STATUSES,
        ).update(
            live_lat=lat,
            live_lng=lng,
            live_timestamp=timestamp,
            live_accuracy=accuracy,
            live_speed=speed,
            live_bearing=bearing,
        )

        if not updated:
            row = Order.objects.filter(pk=order_id).values('status', 'partner_id').first()
            if row is None:
                raise Order.DoesNotExist(f"Order {order_id} not found")
            if row['status'] not in TRACKABLE_STATUSES:
                raise InvalidOrderStateError(f"Cannot track an order that is {row['status']}")
            if str(row['partner_id']) != str(partner_id):
                raise PartnerMismatchError("Order is not assigned to this partner")
            logger.debug(f"[TRACKING] Stale ping ignored for order {str(order_id)[:8]}")
            return False

        PartnerRegistry.update_location(
            partner_id, lat, lng,
            accuracy=accuracy, heading=bearing, speed=speed, timestamp=timestamp,
        )
        events.broadcast_partner_location(
            str(order_id), lat, lng, timestamp.isoformat(), speed=speed, bearing=bearing
        )
        return True

    # ============================================
    # STATUS TRANSITIONS
    # ============================================

    def record_status_transition(
        self,
        order_id,
        new_status: str,
        actor_type: str = ActorType.PARTNER,
        actor_id='',
        note: str = '',
        location: Optional[Sequence[float]] = None,
        partner_id=None,
    ) -> Order:
        """
        Move an in-flight order forward and append the history entry.

        Args:
            order_id: Order UUID
            new_status: picked or in_transit
            actor_type: ActorType value
            actor_id: Id of the actor
            note: Optional note for history
            location: Optional [lon, lat] where it happened
            partner_id: When given, must be the order's partner

        Returns:
            Updated Order

        Raises:
            InvalidOrderStateError, InvalidTransition, PartnerMismatchError
        """
        if new_status == OrderStatus.DELIVERED:
            raise InvalidTransition("Delivery must be confirmed with proof of delivery")
        if new_status not in TIMESTAMP_FIELDS:
            raise InvalidTransition(f"'{new_status}' cannot be reported")
        if location is not None:
            location = validate_coordinates(location)

        now = timezone.now()

        with transaction.atomic():
            order = Order.objects.get(pk=order_id)

            if order.status not in TRACKABLE_STATUSES:
                raise InvalidOrderStateError(f"Cannot update an order that is {order.status}")
            if partner_id is not None and str(order.partner_id) != str(partner_id):
                raise PartnerMismatchError("Order is not assigned to this partner")
            if not order.can_transition_to(new_status):
                raise InvalidTransition(f"Cannot go from {order.status} to {new_status}")

            fields = {'status': new_status, 'updated_at': now, TIMESTAMP_FIELDS[new_status]: now}
            if new_status == OrderStatus.PICKED:
                fields['pickup_actual_time'] = now

            moved = Order.objects.filter(pk=order_id, status=order.status).update(**fields)
            if not moved:
                raise InvalidOrderStateError("Order status changed concurrently")

            TrackingEvent.objects.append(
                order, new_status, actor_type, actor_id, note=note, location=location
            )
            order.refresh_from_db()

        logger.info(f"[TRACKING] Order {order.short_id} -> {new_status} by {actor_type}")

        self.refresh_projection(order)

        events.broadcast_order_status(str(order.id), new_status, note)
        self.notifier.status_changed(order, new_status)
        return order

    # ============================================
    # ROUTE PROJECTION
    # ============================================

    def _next_target(self, order: Order):
        """Pickup until picked up, then the next undelivered drop."""
        if order.status == OrderStatus.ASSIGNED:
            return [order.pickup_lng, order.pickup_lat]
        drop = order.drops.filter(status=DropStatus.PENDING).order_by('sequence').first()
        if drop is None:
            return None
        return [drop.lng, drop.lat]

    def _current_position(self, order: Order):
        if order.live_timestamp is not None:
            return [order.live_lng, order.live_lat]
        if order.partner_id and order.partner.has_location:
            return order.partner.coordinates
        return [order.pickup_lng, order.pickup_lat]

    def refresh_projection(self, order: Order) -> bool:
        """
        Recompute planned route (once) and remaining distance/ETA.

        RouteUnavailable leaves the fields as they were.

        Returns:
            True if the remaining projection was refreshed
        """
        if order.status not in TRACKABLE_STATUSES:
            return False

        updates = {}

        if not order.planned_path:
            final_drop = order.drops.order_by('-sequence').first()
            if final_drop is not None:
                try:
                    planned = self.routing.route(
                        [order.pickup_lng, order.pickup_lat],
                        [final_drop.lng, final_drop.lat],
                        order.vehicle_type,
                    )
                    updates['planned_path'] = planned.geometry
                    updates['route_distance_planned'] = planned.distance_m
                except RouteUnavailable as e:
                    logger.warning(f"[TRACKING] Planned route unavailable for {order.short_id}: {e}")

        target = self._next_target(order)
        refreshed = False
        if target is not None:
            try:
                remaining = self.routing.route(self._current_position(order), target, order.vehicle_type)
                now = timezone.now()
                updates.update(
                    route_distance_remaining=remaining.distance_m,
                    route_duration_remaining=remaining.duration_s,
                    route_eta=now + timedelta(seconds=remaining.duration_s),
                    route_refreshed_at=now,
                )
                refreshed = True
            except RouteUnavailable as e:
                logger.warning(f"[TRACKING] ETA unavailable for {order.short_id}: {e}")

        if updates:
            Order.objects.filter(pk=order.pk, status__in=TRACKABLE_STATUSES).update(**updates)
            for field_name, value in updates.items():
                setattr(order, field_name, value)

        if refreshed:
            events.broadcast_order_eta(
                str(order.id),
                order.route_eta.isoformat(),
                order.route_distance_remaining,
                order.route_duration_remaining,
            )
        return refreshed


def build_location_view(order: Order) -> dict:
    """
    What a customer sees for "where is my order".

    Partner position comes from the order's live projection, falling back
    to the partner's last known position.
    """
    payload = {
        'id': str(order.id),
        'type': order.order_type,
        'status': order.status,
        'dispatchState': order.dispatch_state,
        'partner': None,
        'route': None,
    }

    partner = order.partner
    if partner is not None and order.status in TRACKABLE_STATUSES:
        if order.live_timestamp is not None:
            location = {
                'lat': order.live_lat,
                'lng': order.live_lng,
                'lastUpdated': order.live_timestamp.isoformat(),
            }
        else:
            location = partner.location_payload()
        payload['partner'] = {
            'id': str(partner.id),
            'name': partner.name,
            'vehicleNumber': partner.vehicle_number,
            'location': location,
        }

    if order.route_refreshed_at is not None:
        payload['route'] = {
            'current': order.current_location_payload(),
            'remaining': {
                'distance': order.route_distance_remaining,
                'duration': order.route_duration_remaining,
            },
            'eta': order.route_eta.isoformat() if order.route_eta else None,
        }

    if order.order_type == OrderType.PICKUP_DROP:
        payload['maxDrops'] = order.max_drops
        payload['routeOptimized'] = order.route_optimized
    else:
        payload['requiresSignature'] = order.requires_signature

    return payload
