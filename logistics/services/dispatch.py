"""
LOGISTICS App - Dispatch Coordinator for RELAY

Owns an order's assignment lifecycle:

    Searching(radius, attempt) --candidates--> OfferOutstanding(deadline)
    Searching --none--> next attempt (radius + increment) or Exhausted
    OfferOutstanding --first accept--> Assigned
    OfferOutstanding --deadline--> next attempt or Exhausted

Every state change is a conditional UPDATE (compare-and-set) on the order
row. Accepting is `UPDATE ... WHERE id = ? AND status = 'pending'`, so two
partners accepting at once yield exactly one winner. Rounds of different
orders never share state.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from logistics import events
from logistics.exceptions import (
    DispatchExhausted,
    InvalidOrderStateError,
    NoCandidatesFound,
    OfferExpired,
    PartnerBusyError,
    StaleAcceptance,
)
from logistics.models import (
    ActorType,
    AttemptState,
    DispatchAttempt,
    DispatchConfiguration,
    DispatchOffer,
    DispatchState,
    OfferOutcome,
    Order,
    OrderStatus,
    TrackingEvent,
)
from logistics.services.eligibility import Candidate, find_candidates
from logistics.services.timers import CeleryDeadlineTimer
from notifications.gateway import NotificationGateway
from partners.models import Partner, PartnerStatus
from partners.services import PartnerRegistry

logger = logging.getLogger(__name__)


# Dispatch may (re)start from these states
RESTARTABLE_STATES = (DispatchState.IDLE, DispatchState.EXHAUSTED)


class AcceptOutcome(str, Enum):
    WON = 'won'
    LOST = 'lost'
    INVALID = 'invalid'


class RejectOutcome(str, Enum):
    RELEASED = 'released'
    INVALID = 'invalid'


@dataclass
class AcceptResult:
    outcome: AcceptOutcome
    order: Optional[Order] = None
    message: str = ''

    @property
    def won(self) -> bool:
        return self.outcome == AcceptOutcome.WON


@dataclass
class RejectResult:
    outcome: RejectOutcome
    order: Optional[Order] = None
    message: str = ''


class DispatchCoordinator:
    """
    Usage:
        coordinator = DispatchCoordinator()
        coordinator.start(order_id)            # from the start_dispatch task
        coordinator.expire_round(attempt_id)   # from the deadline timer
        coordinator.accept_offer(order_id, partner)
    """

    def __init__(self, config: Optional[DispatchConfiguration] = None, timer=None, notifier=None):
        self.config = config or DispatchConfiguration.get_config()
        self.timer = timer or CeleryDeadlineTimer()
        self.notifier = notifier or NotificationGateway()

    # ============================================
    # SEARCH & OFFER ROUNDS
    # ============================================

    def start(self, order_id) -> Optional[DispatchAttempt]:
        """
        Start a new dispatch process for a pending order.

        A no-op if the order is not pending or a dispatch is already running.

        Returns:
            The round left outstanding, or None (not started, exhausted)
        """
        with transaction.atomic():
            started = Order.objects.filter(
                pk=order_id,
                status=OrderStatus.PENDING,
                dispatch_state__in=RESTARTABLE_STATES,
            ).update(
                dispatch_state=DispatchState.SEARCHING,
                dispatch_run=F('dispatch_run') + 1,
                updated_at=timezone.now(),
            )
            if not started:
                logger.info(f"[DISPATCH] Order {str(order_id)[:8]} not dispatchable, skipping")
                return None

            order = Order.objects.get(pk=order_id)
            logger.info(f"[DISPATCH] Order {order.short_id} dispatch run {order.dispatch_run} started")
            attempt = self._search(order, order.dispatch_run, attempt_number=0)

        if attempt is not None:
            events.broadcast_dispatch_state(
                str(order.id), DispatchState.OFFER_OUTSTANDING, "Looking for a partner"
            )
        return attempt

    def retry(self, order_id) -> Optional[DispatchAttempt]:
        """Manual redispatch (e.g. after exhaustion)."""
        return self.start(order_id)

    def expire_round(self, attempt_id) -> Optional[DispatchAttempt]:
        """
        Deadline of a round elapsed.

        A round that was already accepted, expired or abandoned is left
        untouched, which makes late or duplicate timer fires harmless.

        Returns:
            The next outstanding round, or None
        """
        with transaction.atomic():
            order_id = (
                DispatchAttempt.objects.filter(pk=attempt_id).values_list('order_id', flat=True).first()
            )
            if order_id is None:
                return None

            # Order row before attempt rows, as in accept_offer and cancel_order
            order = Order.objects.select_for_update().get(pk=order_id)

            now = timezone.now()
            expired = DispatchAttempt.objects.filter(
                pk=attempt_id,
                state=AttemptState.OFFER_OUTSTANDING,
            ).update(state=AttemptState.EXPIRED, resolved_at=now)
            if not expired:
                logger.debug(f"[DISPATCH] Timer for round {attempt_id} fired on a resolved round")
                return None

            attempt = DispatchAttempt.objects.get(pk=attempt_id)
            DispatchOffer.objects.filter(
                attempt=attempt,
                outcome=OfferOutcome.PENDING,
            ).update(outcome=OfferOutcome.EXPIRED)

            resumed = Order.objects.filter(
                pk=order_id,
                status=OrderStatus.PENDING,
                dispatch_run=attempt.run,
                dispatch_state=DispatchState.OFFER_OUTSTANDING,
            ).update(dispatch_state=DispatchState.SEARCHING)
            if not resumed:
                return None

            order.refresh_from_db()
            logger.info(
                f"[DISPATCH] Round {attempt.attempt_number} of order {order.short_id} "
                f"expired at {attempt.radius_m}m"
            )
            return self._search(order, attempt.run, attempt.attempt_number + 1)

    def _search(self, order: Order, run: int, attempt_number: int) -> Optional[DispatchAttempt]:
        """Run rounds from `attempt_number` until one has candidates or all fail."""
        try:
            return self._run_rounds(order, run, attempt_number)
        except DispatchExhausted as e:
            logger.warning(f"[DISPATCH] {e}")
            self._exhaust(order, run)
            return None

    def _run_rounds(self, order: Order, run: int, attempt_number: int) -> Optional[DispatchAttempt]:
        while attempt_number < self.config.max_attempts:
            radius = self.config.radius_for_attempt(attempt_number)
            attempt = DispatchAttempt.objects.create(
                order=order,
                run=run,
                attempt_number=attempt_number,
                radius_m=radius,
            )

            try:
                candidates = self._candidates(order, attempt)
            except NoCandidatesFound as e:
                attempt.state = AttemptState.NO_CANDIDATES
                attempt.resolved_at = timezone.now()
                attempt.save(update_fields=['state', 'resolved_at'])
                logger.info(f"[DISPATCH] {e}")
                attempt_number += 1
                continue

            return self._open_round(order, attempt, candidates)

        raise DispatchExhausted(
            f"Order {order.short_id}: no partner after {self.config.max_attempts} rounds"
        )

    def _candidates(self, order: Order, attempt: DispatchAttempt) -> List[Candidate]:
        candidates = find_candidates(order, attempt.radius_m, self.config)
        if not candidates:
            raise NoCandidatesFound(
                f"Order {order.short_id}: nobody eligible within {attempt.radius_m}m "
                f"(attempt {attempt.attempt_number})"
            )
        return candidates

    def _open_round(self, order: Order, attempt: DispatchAttempt,
                    candidates: List[Candidate]) -> Optional[DispatchAttempt]:
        opened = Order.objects.filter(
            pk=order.pk,
            status=OrderStatus.PENDING,
            dispatch_run=attempt.run,
            dispatch_state=DispatchState.SEARCHING,
        ).update(dispatch_state=DispatchState.OFFER_OUTSTANDING)
        if not opened:
            # Cancelled or dispatched elsewhere while we were searching
            attempt.state = AttemptState.ABANDONED
            attempt.resolved_at = timezone.now()
            attempt.save(update_fields=['state', 'resolved_at'])
            return None

        offers = [
            DispatchOffer.objects.create(
                attempt=attempt,
                partner=candidate.partner,
                rank=candidate.rank,
                distance_m=candidate.distance_m,
            )
            for candidate in candidates
        ]

        timeout = self.config.offer_timeout_seconds
        attempt.state = AttemptState.OFFER_OUTSTANDING
        attempt.deadline = timezone.now() + timedelta(seconds=timeout)
        attempt.timer_task_id = self.timer.schedule(attempt.id, timeout) or ''
        attempt.save(update_fields=['state', 'deadline', 'timer_task_id'])

        for offer in offers:
            try:
                self.notifier.offer(offer)
            except Exception as e:
                logger.error(f"[DISPATCH] Failed to queue offer for partner {offer.partner_id}: {e}")

        logger.info(
            f"[DISPATCH] Order {order.short_id} offered to {len(offers)} partners "
            f"(attempt {attempt.attempt_number}, {attempt.radius_m}m, {timeout}s)"
        )
        return attempt

    def _exhaust(self, order: Order, run: int) -> None:
        exhausted = Order.objects.filter(
            pk=order.pk,
            status=OrderStatus.PENDING,
            dispatch_run=run,
            dispatch_state=DispatchState.SEARCHING,
        ).update(dispatch_state=DispatchState.EXHAUSTED)
        if not exhausted:
            return

        try:
            self.notifier.no_partners(order)
        except Exception as e:
            logger.error(f"[DISPATCH] Failed to queue no-partner notice for {order.short_id}: {e}")

    # ============================================
    # PARTNER RESPONSES
    # ============================================

    def accept_offer(self, order_id, partner: Partner) -> AcceptResult:
        """
        Partner accepts an offered order.

        Only an offer that is still pending, in a round that is still
        outstanding, can be accepted.

        Returns:
            AcceptResult with outcome WON, LOST (someone else got it) or
            INVALID (no open offer, partner blocked or already busy)
        """
        now = timezone.now()

        offer = (
            DispatchOffer.objects
            .filter(attempt__order_id=order_id, partner=partner)
            .select_related('attempt')
            .order_by('-attempt__run', '-attempt__attempt_number')
            .first()
        )
        if offer is None:
            return AcceptResult(AcceptOutcome.INVALID, message="No offer for this order")
        if offer.outcome != OfferOutcome.PENDING or offer.attempt.state != AttemptState.OFFER_OUTSTANDING:
            still_pending = Order.objects.filter(pk=order_id, status=OrderStatus.PENDING).exists()
            if offer.outcome == OfferOutcome.LOST or not still_pending:
                return AcceptResult(AcceptOutcome.LOST, message=str(StaleAcceptance()))
            return AcceptResult(AcceptOutcome.INVALID, message="This offer is no longer open")

        if not Partner.objects.filter(pk=partner.pk, status=PartnerStatus.ACTIVE).exists():
            return AcceptResult(AcceptOutcome.INVALID, message="Partner is not active")

        try:
            with transaction.atomic():
                order = self._assign(order_id, partner, offer, now)
        except StaleAcceptance as e:
            DispatchOffer.objects.filter(pk=offer.pk, outcome=OfferOutcome.PENDING).update(
                outcome=OfferOutcome.LOST, responded_at=now
            )
            logger.info(
                f"[DISPATCH] Partner {str(partner.id)[:8]} late for order {str(order_id)[:8]}: {e}"
            )
            return AcceptResult(AcceptOutcome.LOST, message=str(e))
        except OfferExpired as e:
            logger.info(f"[DISPATCH] Partner {str(partner.id)[:8]} answered a closed round: {e}")
            return AcceptResult(AcceptOutcome.INVALID, message=str(e))
        except PartnerBusyError as e:
            return AcceptResult(AcceptOutcome.INVALID, message=str(e))

        self.timer.cancel(offer.attempt.timer_task_id)

        logger.info(f"[DISPATCH] Order {order.short_id} accepted by partner {str(partner.id)[:8]}")

        events.broadcast_order_status(str(order.id), OrderStatus.ASSIGNED, "A partner accepted your order")
        events.broadcast_order_assigned(str(partner.id), str(order.id), {
            'pickup_address': order.pickup_address,
            'pickup': [order.pickup_lng, order.pickup_lat],
            'pickup_contact_phone': order.pickup_contact_phone,
            'pricing_total': str(order.pricing_total),
        })
        self.notifier.assigned(order)

        return AcceptResult(AcceptOutcome.WON, order=order)

    def _assign(self, order_id, partner: Partner, offer: DispatchOffer, now) -> Order:
        """
        Bind the order to the partner. Runs inside the caller's transaction;
        any raised error rolls every write back.

        Lock order: order row, then attempt row, then partner row.
        """
        won = Order.objects.filter(
            pk=order_id,
            status=OrderStatus.PENDING,
            dispatch_run=offer.attempt.run,
        ).update(
            status=OrderStatus.ASSIGNED,
            partner=partner,
            dispatch_state=DispatchState.ASSIGNED,
            assigned_at=now,
            tracking_enabled=True,
            updated_at=now,
        )
        if not won:
            raise StaleAcceptance()

        closed = DispatchAttempt.objects.filter(
            pk=offer.attempt_id,
            state=AttemptState.OFFER_OUTSTANDING,
        ).update(state=AttemptState.ACCEPTED, resolved_at=now)
        if not closed:
            raise OfferExpired("Offer expired")

        order = Order.objects.get(pk=order_id)
        response_time = max((now - offer.offered_at).total_seconds(), 0.0)
        if not PartnerRegistry.claim_for_order(partner.pk, order, response_time):
            raise PartnerBusyError("You already have an active order")

        DispatchOffer.objects.filter(pk=offer.pk).update(outcome=OfferOutcome.WON, responded_at=now)
        DispatchOffer.objects.filter(
            attempt__order_id=order_id,
            outcome=OfferOutcome.PENDING,
        ).update(outcome=OfferOutcome.LOST)

        TrackingEvent.objects.append(
            order,
            OrderStatus.ASSIGNED,
            ActorType.PARTNER,
            partner.id,
            note="Offer accepted",
        )
        return order

    def reject_assignment(self, order_id, partner: Partner, reason: str = '') -> RejectResult:
        """
        Assigned partner hands the order back before pickup.

        The order returns to pending with no partner. With
        DISPATCH_REDISPATCH_ON_REJECT a fresh dispatch starts right away;
        otherwise the stalled-dispatch sweep picks it up.
        """
        now = timezone.now()

        with transaction.atomic():
            released = Order.objects.filter(
                pk=order_id,
                status=OrderStatus.ASSIGNED,
                partner=partner,
            ).update(
                status=OrderStatus.PENDING,
                partner=None,
                dispatch_state=DispatchState.IDLE,
                assigned_at=None,
                tracking_enabled=False,
                live_lat=None,
                live_lng=None,
                live_timestamp=None,
                live_accuracy=None,
                live_speed=None,
                live_bearing=None,
                updated_at=now,
            )
            if not released:
                return RejectResult(RejectOutcome.INVALID, message="Order is not assigned to you")

            order = Order.objects.get(pk=order_id)
            PartnerRegistry.release_after_reject(partner.pk, order)
            TrackingEvent.objects.append(
                order,
                OrderStatus.PENDING,
                ActorType.PARTNER,
                partner.id,
                note=reason or "Partner rejected the assignment",
            )

            if settings.DISPATCH_REDISPATCH_ON_REJECT:
                from logistics.tasks import start_dispatch
                transaction.on_commit(lambda: start_dispatch.delay(str(order_id)))

        logger.info(f"[DISPATCH] Order {order.short_id} released by partner {str(partner.id)[:8]}")

        events.broadcast_order_status(str(order.id), OrderStatus.PENDING, "Finding a new partner")
        self.notifier.status_changed(order, OrderStatus.PENDING)

        return RejectResult(RejectOutcome.RELEASED, order=order)

    # ============================================
    # CANCELLATION
    # ============================================

    def cancel_order(self, order_id, actor_type: str, actor_id='', reason: str = '') -> Order:
        """
        Cancel a pending or assigned order.

        Stops any outstanding round and frees the bound partner.

        Raises:
            InvalidOrderStateError: if the order is past pickup or terminal
        """
        now = timezone.now()

        with transaction.atomic():
            order = Order.objects.get(pk=order_id)
            previous_status = order.status
            cancelled = Order.objects.filter(
                pk=order_id,
                status__in=(OrderStatus.PENDING, OrderStatus.ASSIGNED),
            ).update(
                status=OrderStatus.CANCELLED,
                dispatch_state=DispatchState.IDLE,
                cancelled_at=now,
                cancellation_reason=reason[:255],
                tracking_enabled=False,
                updated_at=now,
            )
            if not cancelled:
                raise InvalidOrderStateError(f"Cannot cancel an order that is {previous_status}")

            order.refresh_from_db()

            outstanding = DispatchAttempt.objects.filter(
                order_id=order_id,
                state__in=(AttemptState.SEARCHING, AttemptState.OFFER_OUTSTANDING),
            )
            timer_ids = list(outstanding.values_list('timer_task_id', flat=True))
            outstanding.update(state=AttemptState.ABANDONED, resolved_at=now)
            DispatchOffer.objects.filter(
                attempt__order_id=order_id,
                outcome=OfferOutcome.PENDING,
            ).update(outcome=OfferOutcome.EXPIRED)

            if order.partner_id:
                PartnerRegistry.release(order.partner_id, order)

            TrackingEvent.objects.append(
                order,
                OrderStatus.CANCELLED,
                actor_type,
                actor_id,
                note=reason or "Order cancelled",
            )

        for task_id in timer_ids:
            self.timer.cancel(task_id)

        logger.info(f"[DISPATCH] Order {order.short_id} cancelled by {actor_type}")

        events.broadcast_order_status(str(order.id), OrderStatus.CANCELLED, reason)
        if order.partner_id:
            events.broadcast_order_cancelled(str(order.partner_id), str(order.id), reason)
        self.notifier.status_changed(order, OrderStatus.CANCELLED)

        return order
