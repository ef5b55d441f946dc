"""
LOGISTICS App - Completion Handler for RELAY

Proof of delivery, final transition to delivered, partner earnings credit
and release. Completing an already delivered order is a no-op, so a retried
request never credits twice.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.db import transaction
from django.utils import timezone

from finance.models import WalletService
from logistics import events
from logistics.exceptions import InvalidOrderStateError, PartnerMismatchError
from logistics.models import (
    ActorType,
    DispatchConfiguration,
    DropPoint,
    DropStatus,
    Order,
    OrderStatus,
    TrackingEvent,
)
from notifications.gateway import NotificationGateway
from partners.models import Partner
from partners.services import PartnerRegistry

logger = logging.getLogger(__name__)


PROOF_FIELDS = ('photos', 'signature', 'otp', 'receiverName', 'receiverRelation', 'location', 'notes')


@dataclass
class CompletionResult:
    order: Order
    completed: bool  # the whole order reached delivered in this call
    already_delivered: bool = False
    drop_sequence: Optional[int] = None


def clean_proof(proof: Optional[dict]) -> dict:
    """Keep the known proof-of-delivery keys."""
    proof = proof or {}
    return {key: proof[key] for key in PROOF_FIELDS if proof.get(key) not in (None, '', [])}


class CompletionService:

    def __init__(self, config: Optional[DispatchConfiguration] = None, notifier=None):
        self.config = config or DispatchConfiguration.get_config()
        self.notifier = notifier or NotificationGateway()

    def complete_delivery(self, order_id, partner: Partner, proof: Optional[dict] = None,
                          drop_sequence: Optional[int] = None) -> CompletionResult:
        """
        Record delivery at one drop point.

        Courier orders have a single drop, so this completes the order.
        For pickup-drop orders each call delivers the next pending drop
        (or `drop_sequence`); the order is delivered with its last drop.

        Args:
            order_id: Order UUID
            partner: Partner delivering
            proof: Proof of delivery (photos, signature, otp, ...)
            drop_sequence: Drop to mark delivered, defaults to the next pending one

        Returns:
            CompletionResult

        Raises:
            InvalidOrderStateError: Order not in transit
            PartnerMismatchError: Partner is not the order's partner
        """
        proof = clean_proof(proof)
        now = timezone.now()

        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order_id)

            if order.status == OrderStatus.DELIVERED:
                logger.info(f"[COMPLETION] Order {order.short_id} already delivered")
                return CompletionResult(order=order, completed=False, already_delivered=True)

            if order.partner_id != partner.pk:
                raise PartnerMismatchError("Order is not assigned to this partner")
            if order.status != OrderStatus.IN_TRANSIT:
                raise InvalidOrderStateError(f"Cannot complete an order that is {order.status}")

            pending = order.drops.filter(status=DropStatus.PENDING)
            if drop_sequence is not None:
                pending = pending.filter(sequence=drop_sequence)
            drop = pending.order_by('sequence').first()
            if drop is None:
                raise InvalidOrderStateError("No pending drop point to deliver")

            delivered_drop = DropPoint.objects.filter(
                pk=drop.pk,
                status=DropStatus.PENDING,
            ).update(status=DropStatus.DELIVERED, actual_time=now, proof=proof)
            if not delivered_drop:
                raise InvalidOrderStateError("Drop point already delivered")

            location = proof.get('location')
            location = tuple(location[:2]) if isinstance(location, (list, tuple)) and len(location) >= 2 else None

            if order.drops.filter(status=DropStatus.PENDING).exists():
                TrackingEvent.objects.append(
                    order,
                    OrderStatus.IN_TRANSIT,
                    ActorType.PARTNER,
                    partner.id,
                    note=f"Drop {drop.sequence} delivered",
                    location=location,
                )
                logger.info(f"[COMPLETION] Order {order.short_id} drop {drop.sequence} delivered")
                return CompletionResult(order=order, completed=False, drop_sequence=drop.sequence)

            Order.objects.filter(pk=order.pk, status=OrderStatus.IN_TRANSIT).update(
                status=OrderStatus.DELIVERED,
                delivered_at=now,
                tracking_enabled=False,
                route_distance_remaining=0,
                route_duration_remaining=0,
                updated_at=now,
            )
            TrackingEvent.objects.append(
                order,
                OrderStatus.DELIVERED,
                ActorType.PARTNER,
                partner.id,
                note="Delivered",
                location=location,
            )
            order.refresh_from_db()

            WalletService.credit_delivery(order, self.config.partner_share_percent)
            PartnerRegistry.record_completion(partner.pk, order)

        logger.info(f"[COMPLETION] Order {order.short_id} delivered by partner {str(partner.id)[:8]}")

        events.broadcast_order_status(str(order.id), OrderStatus.DELIVERED, "Your order was delivered")
        self.notifier.status_changed(order, OrderStatus.DELIVERED)

        return CompletionResult(order=order, completed=True, drop_sequence=drop.sequence)
