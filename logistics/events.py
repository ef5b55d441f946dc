"""
LOGISTICS App - Real-time Event Broadcasting

Helpers that push order events to WebSocket groups via Django Channels.
Used by the dispatch, tracking and completion services.

Groups:
- order_<id>: customers tracking one order
- partner_<id>: one partner's app
"""

import logging
from typing import Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.utils import timezone

logger = logging.getLogger(__name__)


def _send_group_event(group_name: str, event: dict) -> bool:
    """Send event to a channel group. Broadcast failures never break the caller."""
    channel_layer = get_channel_layer()
    if not channel_layer:
        return False

    try:
        async_to_sync(channel_layer.group_send)(group_name, event)
        return True
    except Exception as e:
        logger.error(f"[EVENTS] Failed to send to group {group_name}: {e}")
        return False


# ============================================
# ORDER EVENTS
# ============================================

def broadcast_order_status(order_id: str, new_status: str, message: str = ""):
    """Status change for everyone tracking the order."""
    _send_group_event(
        f'order_{order_id}',
        {
            'type': 'order_status_update',
            'status': new_status,
            'timestamp': timezone.now().isoformat(),
            'message': message,
        }
    )
    logger.debug(f"[EVENTS] Broadcasted status change: {order_id[:8]} -> {new_status}")


def broadcast_partner_location(
    order_id: str,
    latitude: float,
    longitude: float,
    timestamp: str,
    speed: Optional[float] = None,
    bearing: Optional[float] = None,
):
    """New live position of the partner carrying the order."""
    _send_group_event(
        f'order_{order_id}',
        {
            'type': 'partner_location_update',
            'latitude': latitude,
            'longitude': longitude,
            'timestamp': timestamp,
            'speed': speed,
            'bearing': bearing,
        }
    )


def broadcast_order_eta(order_id: str, eta: Optional[str], remaining_distance_m: Optional[float],
                        remaining_duration_s: Optional[float]):
    """Refreshed remaining distance/ETA projection."""
    _send_group_event(
        f'order_{order_id}',
        {
            'type': 'order_eta_update',
            'eta': eta,
            'remaining_distance_m': remaining_distance_m,
            'remaining_duration_s': remaining_duration_s,
        }
    )


def broadcast_dispatch_state(order_id: str, dispatch_state: str, message: str = ""):
    """Dispatch progress (searching, exhausted, ...) for the customer app."""
    _send_group_event(
        f'order_{order_id}',
        {
            'type': 'dispatch_state_update',
            'dispatch_state': dispatch_state,
            'message': message,
        }
    )


# ============================================
# PARTNER EVENTS
# ============================================

def broadcast_order_assigned(partner_id: str, order_id: str, details: dict):
    """Confirm to the winning partner that the order is theirs."""
    _send_group_event(
        f'partner_{partner_id}',
        {
            'type': 'order_assigned',
            'order_id': str(order_id),
            'details': details,
        }
    )
    logger.info(f"[EVENTS] Notified partner {partner_id[:8]} of assignment")


def broadcast_order_cancelled(partner_id: str, order_id: str, reason: str = ""):
    """Tell a partner their assigned order was cancelled."""
    _send_group_event(
        f'partner_{partner_id}',
        {
            'type': 'order_cancelled',
            'order_id': str(order_id),
            'reason': reason,
        }
    )
