"""
LOGISTICS App - Celery Tasks

Dispatch rounds, round deadlines and live ETA refresh.
"""

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)


# ===========================================
# DISPATCH
# ===========================================

@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def start_dispatch(self, order_id: str):
    """
    Start dispatching a pending order.

    Queued when an order is created, re-queued after a partner rejects it
    and on manual retry. A no-op if dispatch is already running.
    """
    from logistics.services.dispatch import DispatchCoordinator

    attempt = DispatchCoordinator().start(order_id)
    logger.info(f"[TASK] start_dispatch {order_id[:8]}: {'offered' if attempt else 'no round opened'}")
    return str(attempt.id) if attempt else None


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def expire_offer_round(self, attempt_id: str):
    """
    Deadline of an offer round.

    Fires late or twice without harm: the coordinator only acts on a round
    that is still outstanding.
    """
    from logistics.services.dispatch import DispatchCoordinator

    next_attempt = DispatchCoordinator().expire_round(attempt_id)
    return str(next_attempt.id) if next_attempt else None


@shared_task(name='logistics.tasks.sweep_stalled_dispatch')
def sweep_stalled_dispatch():
    """
    Restart dispatch for pending orders nobody is dispatching.

    Covers orders released by a partner when immediate redispatch is off,
    and orders whose start_dispatch task was lost.
    """
    from logistics.models import DispatchState, Order, OrderStatus

    cutoff = timezone.now() - timedelta(minutes=settings.DISPATCH_STALL_MINUTES)
    stalled = Order.objects.filter(
        status=OrderStatus.PENDING,
        dispatch_state=DispatchState.IDLE,
        updated_at__lt=cutoff,
    ).values_list('id', flat=True)

    queued = 0
    for order_id in stalled:
        start_dispatch.delay(str(order_id))
        queued += 1

    if queued:
        logger.info(f"[TASK] Re-queued dispatch for {queued} stalled orders")
    return queued


# ===========================================
# LIVE TRACKING
# ===========================================

@shared_task(
    bind=True,
    max_retries=2,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def refresh_live_projection(self, order_id: str):
    """Recompute the remaining distance/ETA of one in-flight order."""
    from logistics.models import Order
    from logistics.services.tracking import TrackingService

    try:
        order = Order.objects.select_related('partner').get(pk=order_id)
    except Order.DoesNotExist:
        logger.warning(f"[TASK] Order {order_id} not found for ETA refresh")
        return False

    return TrackingService().refresh_projection(order)


@shared_task(name='logistics.tasks.refresh_live_projections')
def refresh_live_projections():
    """Periodic ETA refresh for every order with live tracking on."""
    from logistics.models import Order, TRACKABLE_STATUSES

    order_ids = Order.objects.filter(
        status__in=TRACKABLE_STATUSES,
        tracking_enabled=True,
    ).values_list('id', flat=True)

    count = 0
    for order_id in order_ids:
        refresh_live_projection.delay(str(order_id))
        count += 1

    logger.info(f"[TASK] Queued ETA refresh for {count} orders")
    return count


# ===========================================
# ADDRESSES
# ===========================================

@shared_task(
    bind=True,
    max_retries=2,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def fill_missing_addresses(self, order_id: str):
    """
    Reverse geocode pickup and drop points that came without address text.

    Geocoding failures leave the address blank.
    """
    from logistics.exceptions import RouteUnavailable
    from logistics.models import DropPoint, Order
    from logistics.services.routing import RoutingClient

    client = RoutingClient()
    filled = 0

    order = Order.objects.filter(pk=order_id).only('pickup_lat', 'pickup_lng', 'pickup_address', 'pickup_pincode').first()
    if order is None:
        return 0

    if not order.pickup_address:
        try:
            address = client.reverse_geocode([order.pickup_lng, order.pickup_lat])
            Order.objects.filter(pk=order.pk, pickup_address='').update(
                pickup_address=address.display_name[:255],
                pickup_pincode=order.pickup_pincode or address.pincode[:12],
            )
            filled += 1
        except RouteUnavailable as e:
            logger.warning(f"[GEO] No address for pickup of {order.short_id}: {e}")

    for drop in DropPoint.objects.filter(order_id=order_id, address=''):
        try:
            address = client.reverse_geocode([drop.lng, drop.lat])
        except RouteUnavailable as e:
            logger.warning(f"[GEO] No address for drop {drop.sequence} of {order.short_id}: {e}")
            continue
        DropPoint.objects.filter(pk=drop.pk, address='').update(
            address=address.display_name[:255],
            pincode=drop.pincode or address.pincode[:12],
        )
        filled += 1

    return filled
