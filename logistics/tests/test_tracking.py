"""
Tests for TrackingService.

Tests:
- Location pings (last write wins, state and partner checks)
- Status transitions and history
- Remaining distance / ETA projection with a mocked routing provider
- Customer location view
"""

import uuid
from datetime import timedelta
from unittest.mock import MagicMock

from django.test import TestCase
from django.utils import timezone

from logistics.exceptions import (
    InvalidOrderStateError,
    InvalidTransition,
    PartnerMismatchError,
    RouteUnavailable,
)
from logistics.models import Order, OrderStatus, OrderType
from logistics.services.eligibility import find_candidates
from logistics.services.routing import RouteResult
from logistics.services.tracking import TrackingService, build_location_view, validate_coordinates
from logistics.tests.helpers import (
    PICKUP_LAT,
    PICKUP_LNG,
    FakeNotifier,
    make_config,
    make_order,
    make_partner,
    make_user,
)
from partners.models import Partner
from partners.services import PartnerRegistry


def assign(order, partner, status=OrderStatus.ASSIGNED):
    Order.objects.filter(pk=order.pk).update(
        status=status, partner=partner, tracking_enabled=True, assigned_at=timezone.now()
    )
    Partner.objects.filter(pk=partner.pk).update(current_order=order)
    order.refresh_from_db()
    return order


class TrackingTestCase(TestCase):

    def setUp(self):
        self.routing = MagicMock()
        self.routing.route.return_value = RouteResult(
            distance_m=1800.0,
            duration_s=420.0,
            geometry=[[PICKUP_LNG, PICKUP_LAT], [77.21, 28.63]],
        )
        self.notifier = FakeNotifier()
        self.service = TrackingService(routing=self.routing, notifier=self.notifier)

        self.user = make_user()
        self.partner = make_partner('Rider', meters_north=300)
        self.order = assign(make_order(self.user), self.partner)


class TestLocationPings(TrackingTestCase):

    def test_ping_updates_live_projection(self):
        stamp = timezone.now()

        accepted = self.service.record_location(
            self.order.id, self.partner.id, [77.205, 28.612],
            accuracy=6.0, speed=4.2, bearing=90.0, timestamp=stamp,
        )

        self.assertTrue(accepted)
        self.order.refresh_from_db()
        self.assertEqual(self.order.live_lng, 77.205)
        self.assertEqual(self.order.live_lat, 28.612)
        self.assertEqual(self.order.live_timestamp, stamp)
        self.assertEqual(self.order.live_speed, 4.2)

        self.partner.refresh_from_db()
        self.assertAlmostEqual(self.partner.last_location.y, 28.612)

    def test_out_of_order_ping_is_dropped(self):
        """Older timestamp than the stored one: no-op."""
        now = timezone.now()
        self.service.record_location(self.order.id, self.partner.id, [77.205, 28.612], timestamp=now)

        accepted = self.service.record_location(
            self.order.id, self.partner.id, [77.0, 28.0], timestamp=now - timedelta(seconds=5)
        )

        self.assertFalse(accepted)
        self.order.refresh_from_db()
        self.assertEqual(self.order.live_lng, 77.205)

    def test_duplicate_ping_is_idempotent(self):
        now = timezone.now()
        self.assertTrue(self.service.record_location(self.order.id, self.partner.id, [77.205, 28.612], timestamp=now))
        self.assertFalse(self.service.record_location(self.order.id, self.partner.id, [77.205, 28.612], timestamp=now))

    def test_future_ping_does_not_freeze_projection(self):
        """A ping stamped a year ahead is taken as now; later real pings still land."""
        far_future = timezone.now() + timedelta(days=365)
        self.assertTrue(self.service.record_location(
            self.order.id, self.partner.id, [77.205, 28.612], timestamp=far_future
        ))

        self.order.refresh_from_db()
        self.assertLessEqual(self.order.live_timestamp, timezone.now())

        self.assertTrue(self.service.record_location(self.order.id, self.partner.id, [77.21, 28.62]))
        self.order.refresh_from_db()
        self.assertEqual(self.order.live_lng, 77.21)

    def test_future_ping_keeps_freshness_window_honest(self):
        scout = make_partner('Scout', meters_north=600)
        PartnerRegistry.update_location(
            scout.id, PICKUP_LAT, PICKUP_LNG, timestamp=timezone.now() + timedelta(days=365)
        )

        later = timezone.now() + timedelta(days=180)
        pending = make_order(self.user)
        names = [c.partner.name for c in find_candidates(pending, 3000, make_config(), now=later)]
        self.assertNotIn('Scout', names)

    def test_ping_never_touches_history(self):
        self.service.record_location(self.order.id, self.partner.id, [77.205, 28.612])
        self.assertFalse(self.order.history.exists())

    def test_ping_on_pending_order_is_refused(self):
        pending = make_order(self.user)
        with self.assertRaises(InvalidOrderStateError):
            self.service.record_location(pending.id, self.partner.id, [77.2, 28.6])

    def test_ping_on_delivered_order_is_refused(self):
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.DELIVERED)
        with self.assertRaises(InvalidOrderStateError):
            self.service.record_location(self.order.id, self.partner.id, [77.2, 28.6])

    def test_ping_from_other_partner_is_refused(self):
        intruder = make_partner('Intruder')
        with self.assertRaises(PartnerMismatchError):
            self.service.record_location(self.order.id, intruder.id, [77.2, 28.6])

    def test_unknown_order(self):
        with self.assertRaises(Order.DoesNotExist):
            self.service.record_location(uuid.uuid4(), self.partner.id, [77.2, 28.6])

    def test_bad_coordinates(self):
        with self.assertRaises(ValueError):
            self.service.record_location(self.order.id, self.partner.id, [200, 28.6])


class TestValidateCoordinates(TestCase):

    def test_valid(self):
        self.assertEqual(validate_coordinates(['77.2', 28.6]), (77.2, 28.6))

    def test_latitude_out_of_range(self):
        with self.assertRaises(ValueError):
            validate_coordinates([77.2, 91])

    def test_missing_value(self):
        with self.assertRaises(ValueError):
            validate_coordinates([77.2])


class TestStatusTransitions(TrackingTestCase):

    # ==========================================
    # ALLOWED EDGES
    # ==========================================

    def test_pickup(self):
        order = self.service.record_status_transition(
            self.order.id, OrderStatus.PICKED,
            actor_id=self.partner.id, note='At the counter',
            location=[PICKUP_LNG, PICKUP_LAT], partner_id=self.partner.id,
        )

        self.assertEqual(order.status, OrderStatus.PICKED)
        self.assertIsNotNone(order.picked_at)
        self.assertIsNotNone(order.pickup_actual_time)

        entry = order.history.get()
        self.assertEqual(entry.status, OrderStatus.PICKED)
        self.assertEqual(entry.note, 'At the counter')
        self.assertEqual(entry.as_history_entry()['location'], [PICKUP_LNG, PICKUP_LAT])
        self.assertIn((order.id, OrderStatus.PICKED), self.notifier.status_notices)

    def test_pickup_then_in_transit(self):
        self.service.record_status_transition(self.order.id, OrderStatus.PICKED)
        order = self.service.record_status_transition(self.order.id, OrderStatus.IN_TRANSIT)

        self.assertEqual(order.status, OrderStatus.IN_TRANSIT)
        self.assertIsNotNone(order.in_transit_at)
        self.assertEqual(
            list(order.history.values_list('status', flat=True)),
            [OrderStatus.PICKED, OrderStatus.IN_TRANSIT],
        )

    def test_history_is_non_decreasing(self):
        self.service.record_status_transition(self.order.id, OrderStatus.PICKED)
        self.service.record_status_transition(self.order.id, OrderStatus.IN_TRANSIT)

        stamps = list(self.order.history.values_list('timestamp', flat=True))
        self.assertEqual(stamps, sorted(stamps))

    # ==========================================
    # REFUSED EDGES
    # ==========================================

    def test_cannot_skip_pickup(self):
        with self.assertRaises(InvalidTransition):
            self.service.record_status_transition(self.order.id, OrderStatus.IN_TRANSIT)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.ASSIGNED)

    def test_delivery_needs_proof(self):
        assign(self.order, self.partner, OrderStatus.IN_TRANSIT)
        with self.assertRaises(InvalidTransition):
            self.service.record_status_transition(self.order.id, OrderStatus.DELIVERED)

    def test_pending_order_refused(self):
        pending = make_order(self.user)
        with self.assertRaises(InvalidOrderStateError):
            self.service.record_status_transition(pending.id, OrderStatus.PICKED)

    def test_wrong_partner_refused(self):
        intruder = make_partner('Intruder')
        with self.assertRaises(PartnerMismatchError):
            self.service.record_status_transition(
                self.order.id, OrderStatus.PICKED, partner_id=intruder.id
            )
        self.assertFalse(self.order.history.exists())


class TestRouteProjection(TrackingTestCase):

    def test_projection_on_assignment(self):
        """Planned path pickup -> last drop, remaining from partner to pickup."""
        refreshed = self.service.refresh_projection(self.order)

        self.assertTrue(refreshed)
        self.order.refresh_from_db()
        self.assertEqual(self.order.route_distance_planned, 1800.0)
        self.assertEqual(len(self.order.planned_path), 2)
        self.assertEqual(self.order.route_distance_remaining, 1800.0)
        self.assertEqual(self.order.route_duration_remaining, 420.0)
        self.assertIsNotNone(self.order.route_eta)

        remaining_call = self.routing.route.call_args_list[-1]
        origin, target, mode = remaining_call.args
        self.assertEqual(origin, self.partner.coordinates)
        self.assertEqual(target, [PICKUP_LNG, PICKUP_LAT])
        self.assertEqual(mode, self.order.vehicle_type)

    def test_planned_path_computed_once(self):
        self.service.refresh_projection(self.order)
        self.order.refresh_from_db()
        self.routing.route.reset_mock()

        self.service.refresh_projection(self.order)

        self.assertEqual(self.routing.route.call_count, 1)

    def test_after_pickup_targets_next_drop(self):
        assign(self.order, self.partner, OrderStatus.PICKED)
        drop = self.order.drops.get()

        self.service.refresh_projection(self.order)

        _, target, _ = self.routing.route.call_args_list[-1].args
        self.assertEqual(target, [drop.lng, drop.lat])

    def test_live_position_is_the_origin(self):
        self.service.record_location(self.order.id, self.partner.id, [77.199, 28.609])
        self.order.refresh_from_db()

        self.service.refresh_projection(self.order)

        origin, _, _ = self.routing.route.call_args_list[-1].args
        self.assertEqual(origin, [77.199, 28.609])

    def test_routing_failure_keeps_previous_values(self):
        self.service.refresh_projection(self.order)
        self.order.refresh_from_db()
        previous_eta = self.order.route_eta

        self.routing.route.side_effect = RouteUnavailable('osrm down')
        refreshed = self.service.refresh_projection(self.order)

        self.assertFalse(refreshed)
        self.order.refresh_from_db()
        self.assertEqual(self.order.route_eta, previous_eta)
        self.assertEqual(self.order.route_distance_remaining, 1800.0)

    def test_terminal_order_not_refreshed(self):
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.CANCELLED)
        self.order.refresh_from_db()
        self.assertFalse(self.service.refresh_projection(self.order))
        self.routing.route.assert_not_called()

    def test_transition_refreshes_projection(self):
        self.service.record_status_transition(self.order.id, OrderStatus.PICKED)
        self.assertTrue(self.routing.route.called)


class TestLocationView(TrackingTestCase):

    def test_courier_view_before_first_ping(self):
        """Partner position falls back to their last known location."""
        view = build_location_view(self.order)

        self.assertEqual(view['status'], OrderStatus.ASSIGNED)
        self.assertEqual(view['partner']['name'], 'Rider')
        self.assertAlmostEqual(view['partner']['location']['lat'], self.partner.last_location.y)
        self.assertIsNone(view['route'])
        self.assertFalse(view['requiresSignature'])
        self.assertNotIn('maxDrops', view)

    def test_view_with_live_tracking(self):
        self.service.record_location(self.order.id, self.partner.id, [77.199, 28.609])
        self.order.refresh_from_db()
        self.service.refresh_projection(self.order)
        self.order.refresh_from_db()

        view = build_location_view(self.order)

        self.assertEqual(view['partner']['location']['lng'], 77.199)
        self.assertEqual(view['route']['remaining'], {'distance': 1800.0, 'duration': 420.0})
        self.assertEqual(view['route']['current']['coordinates'], [77.199, 28.609])

    def test_pending_order_has_no_partner(self):
        view = build_location_view(make_order(self.user))
        self.assertIsNone(view['partner'])
        self.assertEqual(view['dispatchState'], 'idle')

    def test_pickup_drop_variant_fields(self):
        order = make_order(
            self.user,
            order_type=OrderType.PICKUP_DROP,
            drops=[{'lat': 28.62, 'lng': 77.21}, {'lat': 28.63, 'lng': 77.22}],
            max_drops=4,
        )
        view = build_location_view(order)
        self.assertEqual(view['maxDrops'], 4)
        self.assertFalse(view['routeOptimized'])
        self.assertNotIn('requiresSignature', view)

    def test_tracking_payload_lists_history(self):
        self.service.record_status_transition(self.order.id, OrderStatus.PICKED)
        self.order.refresh_from_db()

        payload = self.order.tracking_payload()

        self.assertTrue(payload['liveTracking']['isEnabled'])
        self.assertEqual(payload['history'][0]['status'], OrderStatus.PICKED)
        self.assertEqual(payload['history'][0]['updatedBy']['type'], 'partner')
