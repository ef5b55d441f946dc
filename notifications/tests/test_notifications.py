"""
Notifications App Tests

Tests for:
- Push transport over the channel layer
- Customer device registry
- Offer, no-partner, assignment and status notice tasks
- NotificationGateway queueing after commit
"""

from unittest.mock import MagicMock, patch

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.test import SimpleTestCase, TestCase
from rest_framework import status
from rest_framework.test import APIClient

from logistics.models import DispatchOffer, Order, OrderStatus
from logistics.services.dispatch import DispatchCoordinator
from logistics.tests.helpers import FakeNotifier, FakeTimer, make_config, make_order, make_partner, make_user
from notifications.gateway import NotificationGateway
from notifications.models import MAX_ACTIVE_DEVICES, UserDevice
from notifications.push import MobilePushService, device_group_name
from notifications.tasks import (
    send_assignment_notice,
    send_no_partner_notice,
    send_offer_notification,
    send_order_status_notice,
)


class TestMobilePushService(SimpleTestCase):

    def test_no_token_is_silent_noop(self):
        """A missing device token is not an error."""
        self.assertFalse(MobilePushService.push('', 'Title', 'Body'))
        self.assertFalse(MobilePushService.push(None, 'Title', 'Body'))

    def test_group_name_is_stable_and_safe(self):
        name = device_group_name('fcm:token/with+odd=chars')
        self.assertEqual(name, device_group_name('fcm:token/with+odd=chars'))
        self.assertTrue(name.startswith('device_'))
        self.assertLess(len(name), 100)

    def test_push_reaches_device_group(self):
        layer = get_channel_layer()
        channel = async_to_sync(layer.new_channel)()
        async_to_sync(layer.group_add)(device_group_name('abc123'), channel)

        sent = MobilePushService.push('abc123', 'New Order Available', 'Pickup', {'orderId': '42'})

        self.assertTrue(sent)
        message = async_to_sync(layer.receive)(channel)
        self.assertEqual(message['type'], 'push_notification')
        self.assertEqual(message['data'], {'orderId': '42'})


class TestDeviceRegistry(TestCase):

    def setUp(self):
        self.user = make_user()

    def test_register_refreshes_existing(self):
        first = UserDevice.objects.register(self.user, 'tok-1', 'android')
        UserDevice.objects.filter(pk=first.pk).update(is_active=False)

        again = UserDevice.objects.register(self.user, 'tok-1', 'android')

        self.assertEqual(first.pk, again.pk)
        self.assertTrue(again.is_active)

    def test_active_device_limit(self):
        """Registering past the limit retires the least recently active device."""
        devices = [
            UserDevice.objects.register(self.user, f'tok-{i}', 'ios')
            for i in range(MAX_ACTIVE_DEVICES + 1)
        ]

        active = UserDevice.objects.filter(user=self.user, is_active=True)
        self.assertEqual(active.count(), MAX_ACTIVE_DEVICES)
        self.assertFalse(active.filter(pk=devices[0].pk).exists())

    def test_api_register_and_remove(self):
        client = APIClient()
        client.force_authenticate(self.user)

        response = client.post('/api/devices/', {'device_id': 'tok-api', 'device_type': 'web'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = client.delete('/api/devices/', {'device_id': 'tok-api'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(UserDevice.objects.get(device_id='tok-api').is_active)

        response = client.delete('/api/devices/', {'device_id': 'unknown'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


@patch('notifications.tasks.MobilePushService.push', return_value=True)
class TestNotificationTasks(TestCase):

    def setUp(self):
        self.user = make_user()
        UserDevice.objects.register(self.user, 'customer-phone', 'android')
        self.partner = make_partner('Rider', meters_north=1000)
        self.order = make_order(self.user, total='250.00')
        DispatchCoordinator(config=make_config(), timer=FakeTimer(), notifier=FakeNotifier()).start(self.order.id)
        self.offer = DispatchOffer.objects.get(partner=self.partner)

    def test_offer_payload(self, mock_push):
        self.assertTrue(send_offer_notification(self.offer.pk))

        self.assertEqual(mock_push.call_args.args[0], 'token-rider')
        data = mock_push.call_args.kwargs['data']
        self.assertEqual(data['type'], 'NEW_ORDER')
        self.assertEqual(data['orderId'], str(self.order.id))
        self.assertEqual(data['pickup_distance'], '1.00')
        self.assertEqual(data['earnings_base'], '200.00')
        self.assertEqual(data['expires_in'], '30')

        self.offer.refresh_from_db()
        self.assertTrue(self.offer.notified)

    def test_offer_skipped_once_order_taken(self, mock_push):
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.ASSIGNED)

        self.assertFalse(send_offer_notification(self.offer.pk))
        mock_push.assert_not_called()

    def test_offer_skipped_without_device_token(self, mock_push):
        self.partner.device_token = ''
        self.partner.save()

        self.assertFalse(send_offer_notification(self.offer.pk))
        mock_push.assert_not_called()

    def test_no_partner_notice(self, mock_push):
        self.assertEqual(send_no_partner_notice(str(self.order.id)), 1)
        self.assertEqual(mock_push.call_args.args[3]['type'], 'NO_PARTNERS')

    def test_status_notice(self, mock_push):
        send_order_status_notice(str(self.order.id), 'picked')
        self.assertEqual(
            mock_push.call_args.args[3],
            {'type': 'ORDER_STATUS', 'orderId': str(self.order.id), 'status': 'picked'},
        )

    def test_assignment_notice(self, mock_push):
        Order.objects.filter(pk=self.order.pk).update(partner=self.partner, status=OrderStatus.ASSIGNED)

        self.assertEqual(send_assignment_notice(str(self.order.id)), 1)

        data = mock_push.call_args.args[3]
        self.assertEqual(data['type'], 'ORDER_ASSIGNED')
        self.assertEqual(data['partnerName'], 'Rider')
        self.assertEqual(data['vehicleNumber'], self.partner.vehicle_number)

    def test_assignment_notice_without_partner(self, mock_push):
        self.assertEqual(send_assignment_notice(str(self.order.id)), 0)
        mock_push.assert_not_called()


class TestNotificationGateway(TestCase):

    def setUp(self):
        self.order = make_order(make_user())
        self.gateway = NotificationGateway()

    def test_queued_only_after_commit(self):
        with patch.object(send_order_status_notice, 'delay') as mock_delay:
            with self.captureOnCommitCallbacks(execute=True):
                self.gateway.status_changed(self.order, 'picked')
                mock_delay.assert_not_called()

        mock_delay.assert_called_once_with(str(self.order.id), 'picked')

    def test_queue_failure_is_logged_not_raised(self):
        with patch.object(send_no_partner_notice, 'delay', MagicMock(side_effect=ConnectionError('broker down'))):
            with self.captureOnCommitCallbacks(execute=True):
                self.gateway.no_partners(self.order)

    def test_assignment_queued(self):
        with patch.object(send_assignment_notice, 'delay') as mock_delay:
            with self.captureOnCommitCallbacks(execute=True):
                self.gateway.assigned(self.order)

        mock_delay.assert_called_once_with(str(self.order.id))
