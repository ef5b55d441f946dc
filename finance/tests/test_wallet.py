"""
Finance App Tests

Tests for:
- WalletService (credit, delivery credit)
- Earnings estimate shown with offers
"""

from datetime import datetime
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone

from finance.models import Transaction, TransactionType, WalletService
from finance.services import calculate_earnings, is_peak_hour, order_distance_km
from logistics.models import Order, OrderStatus
from logistics.tests.helpers import PICKUP_LAT, PICKUP_LNG, make_config, make_order, make_partner, make_user, north_of


class TestWalletService(TestCase):
    """Tests for WalletService operations."""

    def setUp(self):
        self.partner = make_partner('Wallet Rider')
        self.user = make_user()

    # ==========================================
    # CREDIT TESTS
    # ==========================================

    def test_credit_increases_balance(self):
        """Credit should increase partner balance."""
        txn = WalletService.credit(self.partner, Decimal('150.00'), TransactionType.DELIVERY_CREDIT)

        self.partner.refresh_from_db()
        self.assertEqual(self.partner.earnings_balance, Decimal('150.00'))
        self.assertEqual(txn.balance_before, Decimal('0.00'))
        self.assertEqual(txn.balance_after, Decimal('150.00'))

    def test_credit_rejects_non_positive(self):
        """Zero or negative credits are refused."""
        with self.assertRaises(ValueError):
            WalletService.credit(self.partner, Decimal('0'), TransactionType.DELIVERY_CREDIT)

    # ==========================================
    # DELIVERY CREDIT TESTS
    # ==========================================

    def test_credit_delivery_share(self):
        """Partner gets their share of the order total."""
        order = make_order(self.user, total='199.99')
        Order.objects.filter(pk=order.pk).update(status=OrderStatus.DELIVERED, partner=self.partner)
        order.refresh_from_db()

        txn = WalletService.credit_delivery(order, Decimal('80.00'))

        self.assertEqual(txn.amount, Decimal('159.99'))
        self.assertEqual(txn.transaction_type, TransactionType.DELIVERY_CREDIT)
        self.assertEqual(txn.order_id, order.id)

    def test_one_delivery_credit_per_order(self):
        """The database refuses a second delivery credit for the same order."""
        order = make_order(self.user, total='100.00')
        Order.objects.filter(pk=order.pk).update(partner=self.partner)
        order.refresh_from_db()
        WalletService.credit_delivery(order, Decimal('80.00'))

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                WalletService.credit_delivery(order, Decimal('80.00'))

        self.assertEqual(Transaction.objects.filter(order=order).count(), 1)
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.earnings_balance, Decimal('80.00'))

    def test_zero_share_credits_nothing(self):
        """A free order completes without a ledger entry."""
        order = make_order(self.user, total='0.00')
        Order.objects.filter(pk=order.pk).update(status=OrderStatus.DELIVERED, partner=self.partner)
        order.refresh_from_db()

        self.assertIsNone(WalletService.credit_delivery(order, Decimal('80.00')))

        self.assertFalse(Transaction.objects.filter(order=order).exists())
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.earnings_balance, Decimal('0.00'))

    def test_credit_delivery_needs_partner(self):
        order = make_order(self.user)
        with self.assertRaises(ValueError):
            WalletService.credit_delivery(order, Decimal('80.00'))


class TestEarningsEstimate(TestCase):
    """Tests for calculate_earnings."""

    def setUp(self):
        self.config = make_config()
        self.user = make_user()
        self.off_peak = timezone.make_aware(datetime(2026, 3, 2, 14, 0))
        self.peak = timezone.make_aware(datetime(2026, 3, 2, 9, 15))

    def test_base_share_off_peak(self):
        order = make_order(self.user, total='250.00')

        earnings = calculate_earnings(order, self.config, moment=self.off_peak)

        self.assertEqual(earnings['base'], Decimal('200.00'))
        self.assertEqual(earnings['incentives'], Decimal('0.00'))
        self.assertEqual(earnings['total'], Decimal('200.00'))

    def test_peak_hour_bonus(self):
        order = make_order(self.user, total='250.00')
        earnings = calculate_earnings(order, self.config, moment=self.peak)
        self.assertEqual(earnings['incentives'], self.config.peak_hour_bonus)

    def test_long_distance_bonus(self):
        order = make_order(
            self.user, total='900.00',
            drops=[{'lat': north_of(PICKUP_LAT, 12000), 'lng': PICKUP_LNG}],
        )

        self.assertAlmostEqual(order_distance_km(order), 12.0, delta=0.1)
        earnings = calculate_earnings(order, self.config, moment=self.off_peak)
        self.assertEqual(earnings['incentives'], self.config.long_distance_bonus)

    def test_peak_hours(self):
        self.assertTrue(is_peak_hour(self.peak))
        self.assertFalse(is_peak_hour(self.off_peak))
