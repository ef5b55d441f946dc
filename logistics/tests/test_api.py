"""
Tests for the partner and customer order endpoints.

Tests:
- Accept / reject / status / proof / location (partner app)
- Order list, location, tracking, cancel and dispatch retry (customer app)
- Health checks
"""

from datetime import timedelta
from unittest.mock import patch

import requests
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from finance.models import Transaction
from logistics.models import DispatchState, Order, OrderStatus
from logistics.services.dispatch import DispatchCoordinator
from logistics.tests.helpers import (
    FakeNotifier,
    FakeTimer,
    make_config,
    make_order,
    make_partner,
    make_user,
)


def dispatch(order):
    return DispatchCoordinator(config=make_config(), timer=FakeTimer(), notifier=FakeNotifier()).start(order.id)


def routing_offline(test_case):
    """The OSRM server is unreachable in tests; ETA fields just stay empty."""
    patcher = patch('logistics.services.routing.requests.get', side_effect=requests.ConnectionError('offline'))
    patcher.start()
    test_case.addCleanup(patcher.stop)


class PartnerApiTestCase(TestCase):

    def setUp(self):
        routing_offline(self)
        self.customer = make_user('customer')
        self.order = make_order(self.customer)

        self.rider_user = make_user('rider')
        self.rider = make_partner('Rider', user=self.rider_user, meters_north=400)
        self.rival_user = make_user('rival')
        self.rival = make_partner('Rival', user=self.rival_user, meters_north=800)

        dispatch(self.order)

        self.client = APIClient()
        self.client.force_authenticate(self.rider_user)

    def url(self, action):
        return f'/api/partner/orders/{self.order.id}/{action}/'

    def accept(self):
        return self.client.post(self.url('accept'))

    def move_to(self, new_status):
        return self.client.post(self.url('status'), {'status': new_status}, format='json')


class TestAcceptReject(PartnerApiTestCase):

    def test_accept(self):
        response = self.accept()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['outcome'], 'won')
        self.assertEqual(response.data['order']['status'], OrderStatus.ASSIGNED)

    def test_second_acceptance_conflicts(self):
        self.accept()

        rival = APIClient()
        rival.force_authenticate(self.rival_user)
        response = rival.post(self.url('accept'))

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.order.refresh_from_db()
        self.assertEqual(self.order.partner_id, self.rider.id)

    def test_accept_without_offer(self):
        other = make_order(self.customer)
        response = self.client.post(f'/api/partner/orders/{other.id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_reject(self):
        self.accept()

        response = self.client.post(self.url('reject'), {'reason': 'Flat tyre'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['outcome'], 'released')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PENDING)

    def test_reject_unassigned_order(self):
        response = self.client.post(self.url('reject'))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_customer_cannot_accept(self):
        self.client.force_authenticate(self.customer)
        self.assertEqual(self.accept().status_code, status.HTTP_403_FORBIDDEN)


class TestStatusAndProof(PartnerApiTestCase):

    def setUp(self):
        super().setUp()
        self.accept()

    def test_pickup_and_transit(self):
        self.assertEqual(self.move_to('picked').status_code, status.HTTP_200_OK)
        response = self.move_to('in_transit')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['order']['status'], OrderStatus.IN_TRANSIT)

    def test_skipping_pickup_is_400(self):
        self.assertEqual(self.move_to('in_transit').status_code, status.HTTP_400_BAD_REQUEST)

    def test_delivered_not_accepted_as_status(self):
        self.assertEqual(self.move_to('delivered').status_code, status.HTTP_400_BAD_REQUEST)

    def test_other_partner_gets_403(self):
        self.client.force_authenticate(self.rival_user)
        self.assertEqual(self.move_to('picked').status_code, status.HTTP_403_FORBIDDEN)

    def test_status_on_cancelled_order_is_409(self):
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.CANCELLED)
        self.assertEqual(self.move_to('picked').status_code, status.HTTP_409_CONFLICT)

    def test_proof_of_delivery(self):
        self.move_to('picked')
        self.move_to('in_transit')

        response = self.client.post(self.url('proof'), {'otp': '4821'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['completed'])
        self.assertEqual(response.data['order']['status'], OrderStatus.DELIVERED)
        self.assertEqual(Transaction.objects.filter(order=self.order).count(), 1)

    def test_proof_retry_is_ok_and_credits_once(self):
        self.move_to('picked')
        self.move_to('in_transit')
        self.client.post(self.url('proof'), {'otp': '4821'}, format='json')

        response = self.client.post(self.url('proof'), {'otp': '4821'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Transaction.objects.filter(order=self.order).count(), 1)

    def test_proof_needs_evidence(self):
        self.move_to('picked')
        self.move_to('in_transit')
        response = self.client.post(self.url('proof'), {'notes': 'left at door'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_signature_required(self):
        Order.objects.filter(pk=self.order.pk).update(requires_signature=True)
        self.move_to('picked')
        self.move_to('in_transit')

        response = self.client.post(self.url('proof'), {'otp': '4821'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_proof_before_transit_is_409(self):
        response = self.client.post(self.url('proof'), {'otp': '4821'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)


class TestPartnerLocationAndOrders(PartnerApiTestCase):

    def test_ping_without_order_updates_partner(self):
        response = self.client.post(
            '/api/partner/location/', {'coordinates': [77.21, 28.62], 'speed': 3.5}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'ok')
        self.rider.refresh_from_db()
        self.assertAlmostEqual(self.rider.last_location.x, 77.21)

    def test_ping_with_order_updates_tracking(self):
        self.accept()

        self.client.post('/api/partner/location/', {'coordinates': [77.21, 28.62]}, format='json')

        self.order.refresh_from_db()
        self.assertEqual(self.order.live_lat, 28.62)

    def test_stale_ping(self):
        old = (timezone.now() - timedelta(hours=1)).isoformat()
        response = self.client.post(
            '/api/partner/location/', {'coordinates': [77.21, 28.62], 'timestamp': old}, format='json'
        )
        self.assertEqual(response.data['status'], 'stale')

    def test_bad_coordinates(self):
        response = self.client.post('/api/partner/location/', {'coordinates': [77.21]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_future_timestamp_is_400(self):
        ahead = (timezone.now() + timedelta(days=1)).isoformat()
        response = self.client.post(
            '/api/partner/location/', {'coordinates': [77.21, 28.62], 'timestamp': ahead}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_small_clock_drift_is_accepted(self):
        ahead = (timezone.now() + timedelta(seconds=20)).isoformat()
        response = self.client.post(
            '/api/partner/location/', {'coordinates': [77.21, 28.62], 'timestamp': ahead}, format='json'
        )
        self.assertEqual(response.data['status'], 'ok')

    def test_partner_orders(self):
        self.accept()

        response = self.client.get('/api/partner/orders/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['current']['id'], str(self.order.id))
        self.assertEqual(response.data['past'], [])


class TestCustomerEndpoints(TestCase):

    def setUp(self):
        routing_offline(self)
        self.customer = make_user('customer')
        self.order = make_order(self.customer)
        self.client = APIClient()
        self.client.force_authenticate(self.customer)

    def test_order_list_is_scoped_to_owner(self):
        make_order(make_user('someone-else'))

        response = self.client.get('/api/orders/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([o['id'] for o in response.data['results']], [str(self.order.id)])

    def test_order_list_filter(self):
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.CANCELLED)
        make_order(self.customer)

        response = self.client.get('/api/orders/', {'status': 'cancelled'})

        self.assertEqual(response.data['count'], 1)

    def test_location_view(self):
        response = self.client.get(f'/api/orders/{self.order.id}/location/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], OrderStatus.PENDING)
        self.assertIsNone(response.data['partner'])

    def test_location_view_hidden_from_others(self):
        self.client.force_authenticate(make_user('nosy'))
        response = self.client.get(f'/api/orders/{self.order.id}/location/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_staff_can_view_any_order(self):
        self.client.force_authenticate(make_user('ops', is_staff=True))
        response = self.client.get(f'/api/orders/{self.order.id}/tracking/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['tracking']['history'], [])

    def test_cancel(self):
        response = self.client.post(f'/api/orders/{self.order.id}/cancel/', {'reason': 'No longer needed'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['order']['status'], OrderStatus.CANCELLED)
        entry = self.order.history.get()
        self.assertEqual(entry.actor_type, 'user')

    def test_cancel_after_pickup_is_409(self):
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.PICKED)
        response = self.client.post(f'/api/orders/{self.order.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_retry_dispatch_after_exhaustion(self):
        from logistics.tasks import start_dispatch

        Order.objects.filter(pk=self.order.pk).update(dispatch_state=DispatchState.EXHAUSTED)

        with patch.object(start_dispatch, 'delay') as mock_delay:
            with self.captureOnCommitCallbacks(execute=True):
                response = self.client.post(f'/api/orders/{self.order.id}/dispatch/retry/')

        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED)
        mock_delay.assert_called_once_with(str(self.order.id))

    def test_retry_while_dispatching_is_409(self):
        Order.objects.filter(pk=self.order.pk).update(dispatch_state=DispatchState.OFFER_OUTSTANDING)
        response = self.client.post(f'/api/orders/{self.order.id}/dispatch/retry/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)


class TestHealth(TestCase):

    def test_liveness(self):
        response = self.client.get('/health/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ok')

    def test_readiness(self):
        response = self.client.get('/health/ready/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['checks']['database']['status'], 'healthy')


class TestApiRoot(TestCase):

    def test_lists_endpoints(self):
        response = APIClient().get('/api/')
        self.assertIn('orders', response.data['endpoints'])
