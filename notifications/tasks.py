"""
NOTIFICATIONS App - Celery Tasks

Asynchronous delivery of:
- Offer notifications to candidate partners
- "No partner available" notice to the customer
- Assignment and status notices to the customer
"""

import logging
from datetime import timedelta

from celery import shared_task
from django.utils import timezone

from notifications.push import MobilePushService

logger = logging.getLogger(__name__)


STATUS_MESSAGES = {
    'assigned': "A partner accepted your order",
    'picked': "Your package has been picked up",
    'in_transit': "Your package is on the way",
    'delivered': "Your package has been delivered",
    'cancelled': "Your order was cancelled",
    'pending': "We are finding a new partner for your order",
}


def _push_to_user_devices(user, title, body, data) -> int:
    """Push to every active device of a customer. Returns devices reached."""
    from notifications.models import UserDevice

    sent = 0
    for device in UserDevice.objects.filter(user=user, is_active=True):
        if MobilePushService.push(device.device_id, title, body, data):
            sent += 1
    return sent


# ===========================================
# PARTNER NOTIFICATIONS
# ===========================================

@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def send_offer_notification(self, offer_id: int):
    """
    Push a new-order offer to one candidate partner.

    Args:
        offer_id: DispatchOffer primary key

    Returns:
        True if the push was handed to the transport
    """
    from logistics.models import DispatchConfiguration, DispatchOffer, OrderStatus
    from finance.services import calculate_earnings

    offer = DispatchOffer.objects.select_related('partner', 'attempt__order').get(pk=offer_id)
    order = offer.attempt.order
    partner = offer.partner

    if order.status != OrderStatus.PENDING:
        logger.info(f"[TASK] Offer {offer_id} skipped, order {order.short_id} is {order.status}")
        return False

    if not partner.device_token:
        logger.warning(f"[TASK] No device token for partner {str(partner.id)[:8]}")
        return False

    config = DispatchConfiguration.get_config()
    distance_km = offer.distance_m / 1000
    eta = timezone.now() + timedelta(hours=distance_km / config.average_speed_kmh)
    earnings = calculate_earnings(order, config)

    sent = MobilePushService.push(
        partner.device_token,
        title='New Order Available',
        body=f"Pickup from {order.pickup_address or 'pinned location'}",
        data={
            'type': 'NEW_ORDER',
            'orderId': str(order.id),
            'pickup_address': order.pickup_address,
            'pickup_distance': f"{distance_km:.2f}",
            'pickup_eta': eta.isoformat(),
            'earnings_base': str(earnings['base']),
            'earnings_incentives': str(earnings['incentives']),
            'earnings_total': str(earnings['total']),
            'expires_in': str(config.offer_timeout_seconds),
        }
    )

    if sent:
        DispatchOffer.objects.filter(pk=offer_id).update(notified=True)
    return sent


# ===========================================
# CUSTOMER NOTIFICATIONS
# ===========================================

@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def send_no_partner_notice(self, order_id: str):
    """Tell the customer that no partner could be found for now."""
    from logistics.models import Order
    from logistics.events import broadcast_dispatch_state

    order = Order.objects.select_related('user').get(pk=order_id)

    broadcast_dispatch_state(str(order.id), order.dispatch_state, "No partners available right now")

    sent = _push_to_user_devices(
        order.user,
        title='No partners available',
        body="We couldn't find a partner nearby. You can retry or cancel the order.",
        data={'type': 'NO_PARTNERS', 'orderId': str(order.id)},
    )
    logger.info(f"[TASK] No-partner notice for {order.short_id} sent to {sent} devices")
    return sent


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def send_order_status_notice(self, order_id: str, status: str):
    """Tell the customer their order changed status."""
    from logistics.models import Order

    order = Order.objects.select_related('user').get(pk=order_id)

    return _push_to_user_devices(
        order.user,
        title='Order update',
        body=STATUS_MESSAGES.get(status, f"Order status: {status}"),
        data={'type': 'ORDER_STATUS', 'orderId': str(order.id), 'status': status},
    )


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def send_assignment_notice(self, order_id: str):
    """Tell the customer who is coming for their order."""
    from logistics.models import Order

    order = Order.objects.select_related('user', 'partner').get(pk=order_id)
    if order.partner is None:
        logger.info(f"[TASK] Assignment notice for {order.short_id} skipped, no partner")
        return 0

    partner = order.partner
    return _push_to_user_devices(
        order.user,
        title='Partner assigned',
        body=f"{partner.name} is on the way to pick up your order",
        data={
            'type': 'ORDER_ASSIGNED',
            'orderId': str(order.id),
            'partnerName': partner.name,
            'partnerPhone': partner.phone,
            'vehicleType': partner.vehicle_type,
            'vehicleNumber': partner.vehicle_number,
        },
    )
