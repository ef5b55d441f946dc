"""
LOGISTICS App - Django Signals

Auto-dispatch new orders and complete their addresses.
"""

import logging

from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from logistics.models import Order, OrderStatus

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Order)
def on_order_created(sender, instance, created, **kwargs):
    """Queue dispatch for a new pending order once it is committed."""
    if not created or instance.status != OrderStatus.PENDING:
        return

    logger.info(f"[SIGNAL] New order created: {instance.short_id}")

    from logistics.tasks import fill_missing_addresses, start_dispatch

    order_id = str(instance.id)

    def _queue():
        try:
            start_dispatch.delay(order_id)
        except Exception as e:
            logger.error(f"[SIGNAL] Failed to queue dispatch for {order_id[:8]}: {e}")
        try:
            fill_missing_addresses.delay(order_id)
        except Exception as e:
            logger.error(f"[SIGNAL] Failed to queue geocoding for {order_id[:8]}: {e}")

    transaction.on_commit(_queue)
