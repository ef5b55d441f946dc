"""
Tests for CompletionService.

Tests:
- Courier delivery: proof stored, order delivered, partner credited and freed
- Retried completion never credits twice
- Multi-drop pickup-drop orders
- Refusals (wrong partner, wrong status)
"""

from decimal import Decimal

from django.test import TestCase

from finance.models import Transaction, TransactionType
from logistics.exceptions import InvalidOrderStateError, PartnerMismatchError
from logistics.models import DropStatus, Order, OrderStatus, OrderType
from logistics.services.completion import CompletionService, clean_proof
from logistics.tests.helpers import FakeNotifier, make_config, make_order, make_partner, make_user
from partners.models import Partner


def put_in_transit(order, partner):
    Order.objects.filter(pk=order.pk).update(
        status=OrderStatus.IN_TRANSIT, partner=partner, tracking_enabled=True
    )
    Partner.objects.filter(pk=partner.pk).update(current_order=order, total_orders=1)
    order.refresh_from_db()
    return order


PROOF = {'otp': '4821', 'receiverName': 'Kiran', 'photos': ['https://cdn.example.com/p/1.jpg']}


class TestCourierCompletion(TestCase):

    def setUp(self):
        self.notifier = FakeNotifier()
        self.service = CompletionService(config=make_config(), notifier=self.notifier)
        self.user = make_user()
        self.partner = make_partner('Rider')
        self.order = put_in_transit(make_order(self.user, total='250.00'), self.partner)

    def test_delivery_completes_order(self):
        result = self.service.complete_delivery(self.order.id, self.partner, PROOF)

        self.assertTrue(result.completed)
        self.assertFalse(result.already_delivered)
        self.assertEqual(result.drop_sequence, 1)

        order = result.order
        self.assertEqual(order.status, OrderStatus.DELIVERED)
        self.assertIsNotNone(order.delivered_at)
        self.assertFalse(order.tracking_enabled)

        drop = order.drops.get()
        self.assertEqual(drop.status, DropStatus.DELIVERED)
        self.assertEqual(drop.proof['otp'], '4821')

        self.assertEqual(order.history.last().status, OrderStatus.DELIVERED)
        self.assertIn((order.id, OrderStatus.DELIVERED), self.notifier.status_notices)

    def test_partner_credited_and_released(self):
        """80% of 250.00 goes to the partner's wallet."""
        self.service.complete_delivery(self.order.id, self.partner, PROOF)

        credit = Transaction.objects.get(order=self.order)
        self.assertEqual(credit.transaction_type, TransactionType.DELIVERY_CREDIT)
        self.assertEqual(credit.amount, Decimal('200.00'))

        self.partner.refresh_from_db()
        self.assertEqual(self.partner.earnings_balance, Decimal('200.00'))
        self.assertIsNone(self.partner.current_order_id)
        self.assertEqual(self.partner.total_completed, 1)
        self.assertAlmostEqual(self.partner.completion_rate, 1.0)

    def test_free_order_still_completes(self):
        """A zero total delivers and frees the partner without a ledger entry."""
        free = put_in_transit(make_order(self.user, total='0.00'), make_partner('Volunteer'))

        result = self.service.complete_delivery(free.id, free.partner, PROOF)

        self.assertTrue(result.completed)
        self.assertEqual(result.order.status, OrderStatus.DELIVERED)
        self.assertFalse(Transaction.objects.filter(order=free).exists())

        volunteer = Partner.objects.get(pk=free.partner_id)
        self.assertIsNone(volunteer.current_order_id)
        self.assertEqual(volunteer.total_completed, 1)

    def test_retry_is_noop(self):
        """Completing twice credits exactly once."""
        self.service.complete_delivery(self.order.id, self.partner, PROOF)

        result = self.service.complete_delivery(self.order.id, self.partner, PROOF)

        self.assertTrue(result.already_delivered)
        self.assertFalse(result.completed)
        self.assertEqual(Transaction.objects.filter(order=self.order).count(), 1)
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.earnings_balance, Decimal('200.00'))
        self.assertEqual(self.partner.total_completed, 1)

    def test_other_partner_refused(self):
        intruder = make_partner('Intruder')
        with self.assertRaises(PartnerMismatchError):
            self.service.complete_delivery(self.order.id, intruder, PROOF)
        self.assertFalse(Transaction.objects.exists())

    def test_not_in_transit_refused(self):
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.PICKED)
        with self.assertRaises(InvalidOrderStateError):
            self.service.complete_delivery(self.order.id, self.partner, PROOF)
        self.assertEqual(self.order.drops.get().status, DropStatus.PENDING)


class TestMultiDropCompletion(TestCase):

    def setUp(self):
        self.service = CompletionService(config=make_config(), notifier=FakeNotifier())
        self.user = make_user()
        self.partner = make_partner('Van', vehicle_type='mini_truck')
        order = make_order(
            self.user,
            vehicle_type='mini_truck',
            order_type=OrderType.PICKUP_DROP,
            total='600.00',
            drops=[
                {'lat': 28.62, 'lng': 77.21, 'address': 'Stop A'},
                {'lat': 28.63, 'lng': 77.22, 'address': 'Stop B'},
            ],
        )
        self.order = put_in_transit(order, self.partner)

    def test_first_drop_keeps_order_in_transit(self):
        result = self.service.complete_delivery(self.order.id, self.partner, PROOF)

        self.assertFalse(result.completed)
        self.assertEqual(result.drop_sequence, 1)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.IN_TRANSIT)
        self.assertEqual(self.order.history.last().note, 'Drop 1 delivered')
        self.assertFalse(Transaction.objects.exists())

    def test_last_drop_delivers_and_credits_once(self):
        self.service.complete_delivery(self.order.id, self.partner, PROOF)
        result = self.service.complete_delivery(self.order.id, self.partner, PROOF)

        self.assertTrue(result.completed)
        self.assertEqual(result.drop_sequence, 2)
        self.assertEqual(result.order.status, OrderStatus.DELIVERED)
        self.assertEqual(Transaction.objects.get(order=self.order).amount, Decimal('480.00'))

    def test_explicit_drop_sequence(self):
        result = self.service.complete_delivery(self.order.id, self.partner, PROOF, drop_sequence=2)

        self.assertEqual(result.drop_sequence, 2)
        self.assertEqual(
            list(self.order.drops.values_list('sequence', 'status')),
            [(1, DropStatus.PENDING), (2, DropStatus.DELIVERED)],
        )

    def test_delivered_drop_cannot_be_delivered_again(self):
        self.service.complete_delivery(self.order.id, self.partner, PROOF, drop_sequence=1)
        with self.assertRaises(InvalidOrderStateError):
            self.service.complete_delivery(self.order.id, self.partner, PROOF, drop_sequence=1)


class TestCleanProof(TestCase):

    def test_unknown_and_empty_keys_dropped(self):
        cleaned = clean_proof({'otp': '1234', 'signature': '', 'photos': [], 'extra': 'x'})
        self.assertEqual(cleaned, {'otp': '1234'})

    def test_none(self):
        self.assertEqual(clean_proof(None), {})
